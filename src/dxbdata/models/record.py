"""
Ledger Record Models

Pydantic models for transaction and rental-contract records. Records are
immutable once stored; corrections arrive as new records.
"""
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

OFF_PLAN_REGISTRATION = "Off-plan Properties"
EXISTING_REGISTRATION = "Existing Properties"


class RecordKind(str, Enum):
    """Which ledger a record comes from."""

    TRANSACTION = "transaction"
    RENTAL = "rental"


class Record(BaseModel):
    """
    A sale transaction or a rental contract.

    Attributes:
        record_id: Unique identifier within the ledger
        kind: Transaction or rental
        event_date: Transaction date or contract start date
        area_name: Area (community) name
        building_name: Building name
        project_name: Project name (off-plan tracking)
        master_project: Master project / developer
        property_type: Property type (Unit, Villa, Land, ...)
        property_sub_type: Property sub type (Flat, Office, ...)
        rooms: Bedroom category (e.g. "2 B/R", "Studio")
        size_sqm: Size in square meters
        amount: Sale worth, or annual rent for rentals
        unit_price: Amount per square meter (derived when absent)
        registration_type: Off-plan or existing registration
        nearest_metro: Nearest metro station
        nearest_mall: Nearest mall
        nearest_landmark: Nearest landmark
    """

    model_config = ConfigDict(frozen=True)

    record_id: str = Field(..., description="Unique record identifier")
    kind: RecordKind = Field(RecordKind.TRANSACTION, description="Ledger kind")
    event_date: date = Field(..., description="Event date")
    area_name: Optional[str] = Field(None, description="Area name")
    building_name: Optional[str] = Field(None, description="Building name")
    project_name: Optional[str] = Field(None, description="Project name")
    master_project: Optional[str] = Field(None, description="Master project / developer")
    property_type: Optional[str] = Field(None, description="Property type")
    property_sub_type: Optional[str] = Field(None, description="Property sub type")
    rooms: Optional[str] = Field(None, description="Bedroom category")
    size_sqm: Optional[float] = Field(None, description="Size in square meters")
    amount: Optional[float] = Field(None, description="Sale worth or annual rent")
    unit_price: Optional[float] = Field(None, description="Amount per square meter")
    registration_type: Optional[str] = Field(None, description="Registration type")
    nearest_metro: Optional[str] = Field(None, description="Nearest metro station")
    nearest_mall: Optional[str] = Field(None, description="Nearest mall")
    nearest_landmark: Optional[str] = Field(None, description="Nearest landmark")

    @model_validator(mode="before")
    @classmethod
    def derive_unit_price(cls, data: Any) -> Any:
        """Fill unit_price from amount / size when the source did not carry it."""
        if not isinstance(data, dict) or data.get("unit_price") is not None:
            return data
        amount = data.get("amount")
        size = data.get("size_sqm")
        if amount is not None and size:
            try:
                if float(size) > 0:
                    data = {**data, "unit_price": float(amount) / float(size)}
            except (TypeError, ValueError):
                return data
        return data

    @property
    def is_off_plan(self) -> bool:
        """Off-plan registration (matches both the canonical label and variants)."""
        reg = (self.registration_type or "").lower()
        if reg == OFF_PLAN_REGISTRATION.lower():
            return True
        off = reg.find("off")
        return off >= 0 and reg.find("plan", off + 3) >= 0

    @property
    def is_existing(self) -> bool:
        return self.registration_type == EXISTING_REGISTRATION
