"""
Tests for Alert Store and Trigger Ledger

Tests the SQL alert store, the SQL trigger ledger and a full scanner pass
over a SQLite ledger.
"""
import pytest
from datetime import date, datetime
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.dxbdata.db.base import Base
from src.dxbdata.db.models import PriceAlert
from src.dxbdata.db.repository import AlertRepository, TransactionRepository
from src.dxbdata.models.alert import AlertCriteria, AlertKind
from src.dxbdata.models.record import Record
from src.dxbdata.models.results import ScanStatus
from src.dxbdata.pipelines.alert_scanner import AlertScanner
from src.dxbdata.services.alert_store import SqlAlertStore, SqlTriggerLedger
from src.dxbdata.services.record_store import SqlRecordStore

NOW = datetime(2024, 3, 10, 12, 0)


@pytest.fixture
def session_factory():
    """Shared in-memory SQLite database."""
    engine = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(bind=engine, expire_on_commit=False)

    Base.metadata.drop_all(engine)
    engine.dispose()


def add_alert(session_factory, **fields) -> int:
    session = session_factory()
    alert = AlertRepository().create(session, user_id=fields.pop("user_id", 1), **fields)
    session.commit()
    session.close()
    return alert.id


def add_sales(session_factory, records):
    session = session_factory()
    TransactionRepository().add_records(session, records)
    session.commit()
    session.close()


class TestSqlAlertStore:
    """Tests for SqlAlertStore."""

    def test_list_active(self, session_factory):
        """Test listing active alerts from the database."""
        first = add_alert(session_factory, alert_type="price_below", threshold=1_000_000, area_name="Marina")
        add_alert(session_factory, alert_type="any_new", is_active=False)
        third = add_alert(session_factory, user_id=2, alert_type="any_new")

        alerts = SqlAlertStore(session_factory).list_active()

        assert [a.id for a in alerts] == [first, third]
        assert alerts[0].criteria == AlertCriteria(
            area_name="Marina", kind=AlertKind.PRICE_BELOW, threshold=1_000_000
        )

    def test_invalid_alert_is_skipped(self, session_factory):
        """Test invalid alert is skipped."""
        class BrokenRow:
            id = 99

            def to_alert(self):
                return AlertCriteria(kind=AlertKind.PRICE_BELOW)

        valid = add_alert(session_factory, alert_type="any_new")
        rows = [BrokenRow(), AlertRepository().get_by_id(session_factory(), valid)]

        with patch.object(AlertRepository, "get_active", return_value=rows):
            alerts = SqlAlertStore(session_factory).list_active()

        assert [a.id for a in alerts] == [valid]

    def test_advance_watermark(self, session_factory):
        """Test advancing an alert watermark."""
        alert_id = add_alert(session_factory, alert_type="any_new")
        store = SqlAlertStore(session_factory)

        assert store.advance_watermark(alert_id, NOW) is True
        assert store.advance_watermark(alert_id, datetime(2024, 3, 1)) is False

        session = session_factory()
        assert session.get(PriceAlert, alert_id).last_scanned_at == NOW
        session.close()


class TestSqlTriggerLedger:
    """Tests for SqlTriggerLedger."""

    def test_append_is_idempotent(self, session_factory):
        """Test append is idempotent."""
        alert_id = add_alert(session_factory, alert_type="any_new")
        ledger = SqlTriggerLedger(session_factory)

        assert ledger.append(alert_id, "T1", NOW) is True
        assert ledger.append(alert_id, "T1", NOW) is False
        assert ledger.exists(alert_id, "T1") is True
        assert ledger.exists(alert_id, "T2") is False

    def test_history(self, session_factory):
        """Test reading trigger history for an alert."""
        alert_id = add_alert(session_factory, alert_type="any_new")
        ledger = SqlTriggerLedger(session_factory)
        ledger.append(alert_id, "T1", datetime(2024, 3, 1))
        ledger.append(alert_id, "T2", datetime(2024, 3, 2))

        history = ledger.history(alert_id)

        assert [(e.alert_id, e.record_id) for e in history] == [(alert_id, "T2"), (alert_id, "T1")]
        assert history[0].triggered_at == datetime(2024, 3, 2)


class TestScannerOnSql:
    """Full scan over the SQL stores."""

    def test_scan_and_rescan(self, session_factory):
        """Test scan and rescan."""
        add_sales(session_factory, [
            Record(record_id="T1", event_date=date(2024, 3, 10), area_name="Dubai Marina", amount=900_000),
            Record(record_id="T2", event_date=date(2024, 3, 10), area_name="Dubai Marina", amount=1_000_000),
            Record(record_id="T3", event_date=date(2024, 3, 8), area_name="Dubai Marina", amount=500_000),
            Record(record_id="T4", event_date=date(2024, 3, 10), area_name="JVC", amount=600_000),
        ])
        alert_id = add_alert(session_factory, alert_type="price_below", threshold=1_000_000, area_name="marina")
        alert_store = SqlAlertStore(session_factory)
        ledger = SqlTriggerLedger(session_factory)

        stale = alert_store.list_active()[0]

        def scanner_at(now):
            return AlertScanner(
                record_store=SqlRecordStore(session_factory),
                alert_store=alert_store,
                ledger=ledger,
                max_workers=1,
                clock=lambda: now,
            )

        first = scanner_at(NOW).scan_all()
        add_sales(session_factory, [
            Record(record_id="T5", event_date=date(2024, 3, 11), area_name="Dubai Marina", amount=800_000),
        ])
        later = datetime(2024, 3, 11, 12, 0)
        second = scanner_at(later).scan_all()
        replay = scanner_at(later).scan_alert(stale)

        assert first.results[0].status is ScanStatus.OK
        assert first.new_triggers == 1
        assert first.results[0].watermark_advanced
        assert second.new_triggers == 1
        assert replay.new_triggers == 0
        assert replay.duplicates == 1
        assert [e.record_id for e in ledger.history(alert_id)] == ["T5", "T1"]
        assert alert_store.list_active()[0].last_scanned_at == later
