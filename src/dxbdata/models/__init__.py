"""
Domain Models

Pydantic models for ledger records, alerts and engine results.
"""
from src.dxbdata.models.record import (
    Record,
    RecordKind,
    OFF_PLAN_REGISTRATION,
    EXISTING_REGISTRATION,
)
from src.dxbdata.models.alert import Alert, AlertCriteria, AlertKind, TriggerEntry
from src.dxbdata.models.results import (
    AlertScanResult,
    FlipCandidate,
    ScanStatus,
    ScanSummary,
)

__all__ = [
    "Record",
    "RecordKind",
    "OFF_PLAN_REGISTRATION",
    "EXISTING_REGISTRATION",
    "Alert",
    "AlertCriteria",
    "AlertKind",
    "TriggerEntry",
    "AlertScanResult",
    "FlipCandidate",
    "ScanStatus",
    "ScanSummary",
]
