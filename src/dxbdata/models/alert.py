"""
Alert Models

Pydantic models for price alerts, their match criteria and trigger ledger
entries.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AlertKind(str, Enum):
    """
    What an alert compares.

    The *_sqm_* kinds compare the record's unit price, the others its
    absolute amount. ANY_NEW fires on every record passing the filter.
    """

    PRICE_BELOW = "price_below"
    PRICE_ABOVE = "price_above"
    PRICE_SQM_BELOW = "price_sqm_below"
    PRICE_SQM_ABOVE = "price_sqm_above"
    ANY_NEW = "any_new"

    @property
    def requires_threshold(self) -> bool:
        return self is not AlertKind.ANY_NEW

    @property
    def compares_unit_price(self) -> bool:
        return self in (AlertKind.PRICE_SQM_BELOW, AlertKind.PRICE_SQM_ABOVE)

    @property
    def is_below(self) -> bool:
        return self in (AlertKind.PRICE_BELOW, AlertKind.PRICE_SQM_BELOW)


class AlertCriteria(BaseModel):
    """
    Typed filter evaluated against each record.

    Every field is optional; an absent field matches any record on that
    dimension.

    Attributes:
        area_name: Case-insensitive substring of the record's area
        building_name: Case-insensitive substring of the record's building
        property_type: Case-insensitive exact property type
        kind: Comparison to apply
        threshold: Strict comparison bound (required unless kind is ANY_NEW)
    """

    model_config = ConfigDict(frozen=True)

    area_name: Optional[str] = Field(None, description="Area substring")
    building_name: Optional[str] = Field(None, description="Building substring")
    property_type: Optional[str] = Field(None, description="Exact property type")
    kind: AlertKind = Field(AlertKind.ANY_NEW, description="Alert kind")
    threshold: Optional[float] = Field(None, description="Price threshold")

    @model_validator(mode="after")
    def check_threshold(self) -> "AlertCriteria":
        if self.kind.requires_threshold and self.threshold is None:
            raise ValueError(f"threshold is required for {self.kind.value} alerts")
        return self


class Alert(BaseModel):
    """
    A subscriber's price alert.

    The watermark (last_scanned_at) is owned by the alert scanner and only
    ever moves forward.
    """

    id: int = Field(..., description="Alert identifier")
    user_id: int = Field(..., description="Subscriber identifier")
    name: Optional[str] = Field(None, description="Display name")
    criteria: AlertCriteria = Field(default_factory=AlertCriteria)
    is_active: bool = Field(True, description="Whether the alert is scanned")
    last_scanned_at: Optional[datetime] = Field(None, description="Scan watermark")

    @property
    def kind(self) -> AlertKind:
        return self.criteria.kind

    @property
    def threshold(self) -> Optional[float]:
        return self.criteria.threshold


class TriggerEntry(BaseModel):
    """Immutable (alert, matched record) pair from the trigger ledger."""

    model_config = ConfigDict(frozen=True)

    alert_id: int
    record_id: str
    triggered_at: datetime
