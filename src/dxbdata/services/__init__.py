"""
Services Package

Storage-facing interfaces used by the pipelines: the record store, the alert
store and the trigger ledger.
"""
from src.dxbdata.services.alert_store import AlertStore, SqlAlertStore, SqlTriggerLedger, TriggerLedger
from src.dxbdata.services.record_store import InMemoryRecordStore, RecordStore, SqlRecordStore

__all__ = [
    "AlertStore",
    "TriggerLedger",
    "SqlAlertStore",
    "SqlTriggerLedger",
    "RecordStore",
    "SqlRecordStore",
    "InMemoryRecordStore",
]
