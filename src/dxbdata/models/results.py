"""
Result Models

Partial-result summaries returned by the alert scanner and the flip detector.
Failures are reported here as counts instead of being raised.
"""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ScanStatus(str, Enum):
    """Outcome of scanning one alert."""

    OK = "ok"
    QUERY_FAILED = "query_failed"
    CANCELLED = "cancelled"


class AlertScanResult(BaseModel):
    """
    Outcome of one alert scan.

    Attributes:
        alert_id: Scanned alert
        status: ok, query_failed or cancelled
        matched: Records that passed the criteria
        new_triggers: Ledger entries appended by this scan
        duplicates: Matches already present in the ledger
        errored: Matches whose ledger append failed
        notified: Notifications accepted by the dispatcher
        notify_failed: Notifications that failed (never retried)
        watermark: Watermark after the scan (unchanged unless status is ok)
        watermark_advanced: Whether this scan moved the watermark
        error: Error message for query or watermark failures
    """

    alert_id: int
    status: ScanStatus = ScanStatus.OK
    matched: int = 0
    new_triggers: int = 0
    duplicates: int = 0
    errored: int = 0
    notified: int = 0
    notify_failed: int = 0
    watermark: Optional[datetime] = None
    watermark_advanced: bool = False
    error: Optional[str] = None


class ScanSummary(BaseModel):
    """Totals for one batch pass over all active alerts."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    results: List[AlertScanResult] = Field(default_factory=list)

    @property
    def alerts_scanned(self) -> int:
        return len(self.results)

    @property
    def new_triggers(self) -> int:
        return sum(r.new_triggers for r in self.results)

    @property
    def failed_alerts(self) -> int:
        return sum(1 for r in self.results if r.status is ScanStatus.QUERY_FAILED)

    @property
    def cancelled_alerts(self) -> int:
        return sum(1 for r in self.results if r.status is ScanStatus.CANCELLED)

    @property
    def status(self) -> str:
        """success, partial or failure, mirroring the scan run ledger."""
        if not self.results:
            return "success"
        if self.failed_alerts == len(self.results):
            return "failure"
        if self.failed_alerts or self.cancelled_alerts or any(r.errored for r in self.results):
            return "partial"
        return "success"

    def to_counts(self) -> dict:
        return {
            "alerts_scanned": self.alerts_scanned,
            "new_triggers": self.new_triggers,
            "matched": sum(r.matched for r in self.results),
            "duplicates": sum(r.duplicates for r in self.results),
            "errored": sum(r.errored for r in self.results),
            "notified": sum(r.notified for r in self.results),
            "notify_failed": sum(r.notify_failed for r in self.results),
            "failed_alerts": self.failed_alerts,
            "cancelled_alerts": self.cancelled_alerts,
        }


class FlipCandidate(BaseModel):
    """
    A pair of consecutive sales of the same logical unit.

    profit_pct is rounded to 2 decimals.
    """

    building_name: str
    area_name: str
    unit_size: float
    rooms: Optional[str] = None
    property_sub_type: Optional[str] = None
    buy_record_id: str
    sell_record_id: str
    buy_date: date
    sell_date: date
    buy_price: float
    sell_price: float
    hold_days: int
    profit: float
    profit_pct: float
    sale_rank: int = Field(..., description="1-based rank of the buy record in its unit sequence")
