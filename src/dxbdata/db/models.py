"""
SQLAlchemy ORM Models

Ledger tables (transactions, rental contracts), price alerts with their
trigger ledger, and alert scan run tracking. Ledger rows convert to the
pydantic Record model via to_record().
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index,
    Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.dxbdata.db.base import Base, TimestampMixin
from src.dxbdata.models.alert import Alert, AlertCriteria, AlertKind
from src.dxbdata.models.record import Record, RecordKind

ALERT_KINDS_SQL = ", ".join(f"'{kind.value}'" for kind in AlertKind)


def _to_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


class Transaction(Base, TimestampMixin):
    """
    Sale transaction ledger.

    Append-only; corrections arrive as new rows with a new transaction_id.
    """
    __tablename__ = "transactions"

    transaction_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Ledger transaction identifier"
    )
    instance_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Transaction date"
    )

    # Location
    area_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    building_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    master_project: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Master project / developer"
    )
    nearest_metro: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nearest_mall: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nearest_landmark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Unit
    property_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    property_sub_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rooms: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Bedroom category (Studio, 1 B/R, ...)"
    )
    procedure_area: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Size in square meters"
    )
    reg_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Off-plan Properties / Existing Properties"
    )

    # Price
    actual_worth: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(16, 2),
        nullable=True,
        comment="Sale amount"
    )
    meter_sale_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Sale amount per square meter"
    )

    __table_args__ = (
        Index("idx_transactions_instance_date", "instance_date", "transaction_id"),
        Index("idx_transactions_area_name", "area_name"),
        Index("idx_transactions_building_name", "building_name"),
        Index("idx_transactions_project_name", "project_name"),
    )

    def to_record(self) -> Record:
        return Record(
            record_id=self.transaction_id,
            kind=RecordKind.TRANSACTION,
            event_date=self.instance_date,
            area_name=self.area_name,
            building_name=self.building_name,
            project_name=self.project_name,
            master_project=self.master_project,
            property_type=self.property_type,
            property_sub_type=self.property_sub_type,
            rooms=self.rooms,
            size_sqm=_to_float(self.procedure_area),
            amount=_to_float(self.actual_worth),
            unit_price=_to_float(self.meter_sale_price),
            registration_type=self.reg_type,
            nearest_metro=self.nearest_metro,
            nearest_mall=self.nearest_mall,
            nearest_landmark=self.nearest_landmark,
        )


class Rental(Base, TimestampMixin):
    """Rental contract ledger. amount is the annual rent."""
    __tablename__ = "rentals"

    contract_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Ledger contract identifier"
    )
    contract_start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Contract start date"
    )

    area_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    building_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    master_project: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nearest_metro: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nearest_mall: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nearest_landmark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    property_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    property_sub_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rooms: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    actual_area: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Size in square meters"
    )
    annual_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(16, 2),
        nullable=True,
        comment="Annual rent"
    )

    __table_args__ = (
        Index("idx_rentals_contract_start_date", "contract_start_date", "contract_id"),
        Index("idx_rentals_area_name", "area_name"),
    )

    def to_record(self) -> Record:
        return Record(
            record_id=self.contract_id,
            kind=RecordKind.RENTAL,
            event_date=self.contract_start_date,
            area_name=self.area_name,
            building_name=self.building_name,
            project_name=self.project_name,
            master_project=self.master_project,
            property_type=self.property_type,
            property_sub_type=self.property_sub_type,
            rooms=self.rooms,
            size_sqm=_to_float(self.actual_area),
            amount=_to_float(self.annual_amount),
            nearest_metro=self.nearest_metro,
            nearest_mall=self.nearest_mall,
            nearest_landmark=self.nearest_landmark,
        )


class PriceAlert(Base, TimestampMixin):
    """
    Subscriber price alert.

    last_scanned_at is the scan watermark; only the alert scanner moves it.
    """
    __tablename__ = "price_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Subscriber identifier"
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Criteria
    area_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    building_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    alert_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=AlertKind.ANY_NEW.value,
        comment="price_below, price_above, price_sqm_below, price_sqm_above, any_new"
    )
    threshold: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_scanned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Scan watermark"
    )

    triggers: Mapped[list["AlertTrigger"]] = relationship(
        "AlertTrigger",
        back_populates="alert",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            f"alert_type IN ({ALERT_KINDS_SQL})",
            name="check_alert_type_valid"
        ),
        CheckConstraint(
            "alert_type = 'any_new' OR threshold IS NOT NULL",
            name="check_threshold_present"
        ),
        Index("idx_price_alerts_user_id", "user_id"),
        Index("idx_price_alerts_is_active", "is_active"),
    )

    def to_alert(self) -> Alert:
        """Build the validated Alert model (raises pydantic ValidationError)."""
        return Alert(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            criteria=AlertCriteria(
                area_name=self.area_name,
                building_name=self.building_name,
                property_type=self.property_type,
                kind=self.alert_type,
                threshold=_to_float(self.threshold),
            ),
            is_active=self.is_active,
            last_scanned_at=self.last_scanned_at,
        )


class AlertTrigger(Base):
    """Trigger ledger: at most one row per (alert, record)."""
    __tablename__ = "alert_triggers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("price_alerts.id", ondelete="CASCADE"),
        nullable=False
    )
    record_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Matched ledger record"
    )
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )

    alert: Mapped["PriceAlert"] = relationship("PriceAlert", back_populates="triggers")

    __table_args__ = (
        UniqueConstraint("alert_id", "record_id", name="uq_alert_triggers_alert_record"),
        Index("idx_alert_triggers_triggered_at", "triggered_at"),
    )


class ScanRun(Base, TimestampMixin):
    """Alert scan batch execution metadata and tracking."""
    __tablename__ = "alert_scan_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Run status: running, success, failure, partial"
    )

    alerts_scanned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_triggers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_alerts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_alerts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Scan counters"
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'success', 'failure', 'partial')",
            name="check_scan_status_valid"
        ),
        Index("idx_alert_scan_runs_started_at", "started_at"),
    )
