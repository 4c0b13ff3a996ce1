"""
Tests for Record and Alert Models
"""
import pytest
from datetime import date, datetime
from pydantic import ValidationError

from src.dxbdata.models.alert import Alert, AlertCriteria, AlertKind
from src.dxbdata.models.record import Record, RecordKind
from src.dxbdata.models.results import AlertScanResult, ScanStatus, ScanSummary


class TestRecord:
    """Tests for the Record model."""

    def test_unit_price_is_derived(self):
        """Test unit price is derived."""
        record = Record(record_id="T1", event_date=date(2024, 1, 1), amount=1_000_000, size_sqm=80)

        assert record.unit_price == 12_500.0

    def test_source_unit_price_is_kept(self):
        """Test source unit price is kept."""
        record = Record(
            record_id="T1", event_date=date(2024, 1, 1), amount=1_000_000, size_sqm=80, unit_price=12_000
        )

        assert record.unit_price == 12_000.0

    def test_no_unit_price_without_size(self):
        """Test no unit price without size."""
        assert Record(record_id="T1", event_date=date(2024, 1, 1), amount=1_000_000).unit_price is None
        assert Record(record_id="T2", event_date=date(2024, 1, 1), amount=1_000_000, size_sqm=0).unit_price is None

    def test_defaults_to_transaction(self):
        """Test defaults to transaction."""
        assert Record(record_id="T1", event_date="2024-01-01").kind is RecordKind.TRANSACTION

    def test_records_are_immutable(self):
        """Test records are immutable."""
        record = Record(record_id="T1", event_date=date(2024, 1, 1))

        with pytest.raises(ValidationError):
            record.amount = 5

    @pytest.mark.parametrize("registration,expected", [
        ("Off-plan Properties", True),
        ("OFF PLAN", True),
        ("offplan resale", True),
        ("Existing Properties", False),
        ("plan off", False),
        (None, False),
    ])
    def test_is_off_plan(self, registration, expected):
        """Test is off plan."""
        record = Record(record_id="T1", event_date=date(2024, 1, 1), registration_type=registration)

        assert record.is_off_plan is expected

    def test_is_existing(self):
        """Test detecting existing (ready) registrations."""
        record = Record(record_id="T1", event_date=date(2024, 1, 1), registration_type="Existing Properties")

        assert record.is_existing
        assert not record.is_off_plan


class TestAlertModels:
    """Tests for alert criteria validation."""

    def test_threshold_required_for_price_kinds(self):
        """Test threshold required for price kinds."""
        with pytest.raises(ValidationError, match="threshold is required"):
            AlertCriteria(kind=AlertKind.PRICE_SQM_ABOVE)

    def test_any_new_without_threshold(self):
        """Test any new without threshold."""
        criteria = AlertCriteria(area_name="Marina")

        assert criteria.kind is AlertKind.ANY_NEW
        assert criteria.threshold is None

    def test_unknown_kind_rejected(self):
        """Test unknown kind rejected."""
        with pytest.raises(ValidationError):
            AlertCriteria(kind="price_between", threshold=1)

    def test_kind_flags(self):
        """Test alert kind flags."""
        assert AlertKind.PRICE_SQM_BELOW.compares_unit_price
        assert AlertKind.PRICE_SQM_BELOW.is_below
        assert not AlertKind.PRICE_ABOVE.compares_unit_price
        assert not AlertKind.ANY_NEW.requires_threshold

    def test_alert_shortcuts(self):
        """Test alert criteria shortcuts."""
        alert = Alert(id=1, user_id=2, criteria=AlertCriteria(kind="price_above", threshold=2_000_000))

        assert alert.kind is AlertKind.PRICE_ABOVE
        assert alert.threshold == 2_000_000.0
        assert alert.is_active
        assert alert.last_scanned_at is None


class TestScanSummary:
    """Tests for batch scan status."""

    def summary(self, *results):
        return ScanSummary(started_at=datetime(2024, 3, 10), results=list(results))

    def test_success(self):
        """Test summary status when every alert succeeds."""
        summary = self.summary(AlertScanResult(alert_id=1, new_triggers=2), AlertScanResult(alert_id=2))

        assert summary.status == "success"
        assert summary.new_triggers == 2

    def test_partial_on_cancel(self):
        """Test partial on cancel."""
        summary = self.summary(
            AlertScanResult(alert_id=1),
            AlertScanResult(alert_id=2, status=ScanStatus.CANCELLED),
        )

        assert summary.status == "partial"
        assert summary.cancelled_alerts == 1

    def test_partial_on_errored_appends(self):
        """Test partial on errored appends."""
        assert self.summary(AlertScanResult(alert_id=1, errored=1)).status == "partial"

    def test_failure_when_every_alert_failed(self):
        """Test failure when every alert failed."""
        summary = self.summary(AlertScanResult(alert_id=1, status=ScanStatus.QUERY_FAILED))

        assert summary.status == "failure"
        assert summary.to_counts()["failed_alerts"] == 1
