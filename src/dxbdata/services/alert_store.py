"""
Alert Store and Trigger Ledger

Interfaces the alert scanner writes through, plus their SQL implementations.
Every operation runs in its own session so concurrent scans never share one.
"""
from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from src.dxbdata.db.repository import AlertRepository, TriggerLedgerRepository
from src.dxbdata.db.session import get_db_session, with_retry
from src.dxbdata.models.alert import Alert, TriggerEntry
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)


class AlertStore(Protocol):
    """Source of alert definitions and owner of their watermarks."""

    def list_active(self) -> List[Alert]:
        ...

    def advance_watermark(self, alert_id: int, ts: datetime) -> bool:
        """Move the watermark forward to ts; older values are ignored."""
        ...


class TriggerLedger(Protocol):
    """Append-only (alert, record) ledger with at most one entry per pair."""

    def exists(self, alert_id: int, record_id: str) -> bool:
        ...

    def append(self, alert_id: int, record_id: str, ts: datetime) -> bool:
        """Append an entry; False when the pair is already recorded."""
        ...

    def history(self, alert_id: int, limit: int = 50) -> List[TriggerEntry]:
        ...


class SqlAlertStore:
    """AlertStore over the price_alerts table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory
        self.repository = AlertRepository()

    @with_retry(max_retries=3)
    def list_active(self) -> List[Alert]:
        """
        Active alerts as validated models.

        Rows that fail validation (for example a price alert without a
        threshold) are logged and left out.
        """
        alerts = []
        with get_db_session(self.session_factory) as session:
            for row in self.repository.get_active(session):
                try:
                    alerts.append(row.to_alert())
                except ValidationError as e:
                    logger.warning(
                        "alert_config_invalid",
                        alert_id=row.id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
        logger.info("active_alerts_loaded", count=len(alerts))
        return alerts

    def advance_watermark(self, alert_id: int, ts: datetime) -> bool:
        with get_db_session(self.session_factory) as session:
            return self.repository.advance_watermark(session, alert_id, ts)


class SqlTriggerLedger:
    """TriggerLedger over the alert_triggers table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory
        self.repository = TriggerLedgerRepository()

    def exists(self, alert_id: int, record_id: str) -> bool:
        with get_db_session(self.session_factory) as session:
            return self.repository.exists(session, alert_id, record_id)

    def append(self, alert_id: int, record_id: str, ts: datetime) -> bool:
        with get_db_session(self.session_factory) as session:
            return self.repository.append(session, alert_id, record_id, ts)

    def history(self, alert_id: int, limit: int = 50) -> List[TriggerEntry]:
        with get_db_session(self.session_factory) as session:
            return [
                TriggerEntry(alert_id=row.alert_id, record_id=row.record_id, triggered_at=row.triggered_at)
                for row in self.repository.history(session, alert_id, limit)
            ]
