"""
Watermarked Alert Scanner

Incrementally matches new ledger records against every active alert. Each
alert keeps a watermark (last_scanned_at); a scan reads records after the
watermark, appends each new match to the trigger ledger, notifies the
subscriber once per new match and finally moves the watermark forward.

A scan that fails or is cancelled leaves the watermark where it was; the
ledger's one-entry-per-(alert, record) rule makes the retry idempotent.
"""
import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.settings import settings
from src.dxbdata.matching.criteria import matches
from src.dxbdata.models.alert import Alert
from src.dxbdata.models.record import Record, RecordKind
from src.dxbdata.models.results import AlertScanResult, ScanStatus, ScanSummary
from src.dxbdata.notifications.telegram import LogNotifier, Notifier
from src.dxbdata.services.alert_store import AlertStore, TriggerLedger
from src.dxbdata.services.record_store import RecordStore
from src.dxbdata.utils.logger import get_logger, log_context

logger = get_logger(__name__)


def match_payload(alert: Alert, record: Record) -> Dict[str, Any]:
    """Notification payload for one confirmed match."""
    return {
        "alert_id": alert.id,
        "alert_name": alert.name,
        "kind": alert.kind.value,
        "threshold": alert.threshold,
        "record": record.model_dump(mode="json"),
    }


class AlertScanner:
    """
    Scans alerts against the transaction ledger.

    Usage:
        scanner = AlertScanner(SqlRecordStore(), SqlAlertStore(), SqlTriggerLedger())
        summary = scanner.scan_all()

    Each alert is processed by exactly one worker; distinct alerts may run
    concurrently on a thread pool of max_workers.
    """

    def __init__(
        self,
        record_store: RecordStore,
        alert_store: AlertStore,
        ledger: TriggerLedger,
        notifier: Optional[Notifier] = None,
        lookback: Optional[timedelta] = None,
        max_workers: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.record_store = record_store
        self.alert_store = alert_store
        self.ledger = ledger
        self.notifier = notifier or LogNotifier()
        self.lookback = lookback or timedelta(hours=settings.alert_first_scan_lookback_hours)
        self.max_workers = max_workers or settings.alert_scan_max_workers
        self.clock = clock or datetime.now
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """
        Ask running scans to stop at the next record boundary.

        The request applies to the scan in progress only; the next scan_all()
        or scan_alert() started without an explicit token runs normally.
        """
        logger.warning("alert_scan_cancel_requested")
        self.cancel_event.set()

    def effective_watermark(self, alert: Alert, now: datetime) -> datetime:
        """Stored watermark, or now minus the first-scan lookback."""
        return alert.last_scanned_at or now - self.lookback

    def scan_alert(self, alert: Alert, cancel: Optional[threading.Event] = None) -> AlertScanResult:
        """
        Scan one alert.

        Args:
            alert: Alert to scan
            cancel: Cancellation token (defaults to the scanner's own, reset
                on entry)

        Returns:
            AlertScanResult with status ok, query_failed or cancelled
        """
        if cancel is None:
            self.cancel_event.clear()
            cancel = self.cancel_event
        with log_context(alert_id=alert.id):
            return self._scan(alert, cancel)

    def _scan(self, alert: Alert, cancel: threading.Event) -> AlertScanResult:
        now = self.clock()
        since = self.effective_watermark(alert, now)
        result = AlertScanResult(alert_id=alert.id, watermark=alert.last_scanned_at)

        if cancel.is_set():
            return self._cancelled(result)

        records = None
        try:
            try:
                records = iter(self.record_store.query_records(
                    RecordKind.TRANSACTION, criteria=alert.criteria, since=since
                ))
            except Exception as e:
                return self._query_failed(result, e)

            while True:
                if cancel.is_set():
                    return self._cancelled(result)
                try:
                    record = next(records)
                except StopIteration:
                    break
                except Exception as e:
                    return self._query_failed(result, e)

                if not matches(record, alert.criteria):
                    continue
                result.matched += 1
                self._record_match(alert, record, now, result)
        finally:
            close = getattr(records, "close", None)
            if close is not None:
                close()

        try:
            if self.alert_store.advance_watermark(alert.id, now):
                result.watermark = now
                result.watermark_advanced = True
        except Exception as e:
            result.error = str(e)
            logger.error(
                "alert_watermark_update_failed",
                alert_id=alert.id,
                error=str(e),
                error_type=type(e).__name__,
            )

        logger.info(
            "alert_scan_complete",
            alert_id=alert.id,
            since=since.isoformat(),
            matched=result.matched,
            new_triggers=result.new_triggers,
            duplicates=result.duplicates,
            errored=result.errored,
            notify_failed=result.notify_failed,
            watermark_advanced=result.watermark_advanced,
        )
        return result

    def _record_match(self, alert: Alert, record: Record, now: datetime, result: AlertScanResult) -> None:
        """Append a confirmed match to the ledger and notify once if it is new."""
        try:
            if self.ledger.exists(alert.id, record.record_id):
                result.duplicates += 1
                return
            appended = self.ledger.append(alert.id, record.record_id, now)
        except Exception as e:
            result.errored += 1
            logger.warning(
                "alert_trigger_append_failed",
                alert_id=alert.id,
                record_id=record.record_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        if not appended:
            result.duplicates += 1
            return
        result.new_triggers += 1

        try:
            delivered = self.notifier.notify(alert.user_id, match_payload(alert, record))
        except Exception as e:
            delivered = False
            logger.error(
                "alert_notification_error",
                alert_id=alert.id,
                record_id=record.record_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        if delivered:
            result.notified += 1
        else:
            result.notify_failed += 1

    def _query_failed(self, result: AlertScanResult, error: Exception) -> AlertScanResult:
        result.status = ScanStatus.QUERY_FAILED
        result.error = str(error)
        logger.error(
            "alert_scan_query_failed",
            alert_id=result.alert_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        return result

    def _cancelled(self, result: AlertScanResult) -> AlertScanResult:
        result.status = ScanStatus.CANCELLED
        logger.warning(
            "alert_scan_cancelled",
            alert_id=result.alert_id,
            new_triggers=result.new_triggers,
        )
        return result

    def scan_all(
        self,
        alerts: Optional[Iterable[Alert]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ScanSummary:
        """
        Scan every active alert once.

        Args:
            alerts: Alerts to scan (defaults to the store's active alerts)
            cancel: Cancellation token shared by all workers (defaults to the
                scanner's own, reset on entry)

        Returns:
            ScanSummary with one result per alert, ordered by alert id
        """
        if cancel is None:
            self.cancel_event.clear()
            cancel = self.cancel_event
        started_at = self.clock()
        if alerts is None:
            alerts = self.alert_store.list_active()
        unique = list({alert.id: alert for alert in alerts}.values())
        logger.info("alert_scan_started", alerts=len(unique), max_workers=self.max_workers)

        results: List[AlertScanResult] = []
        if self.max_workers <= 1 or len(unique) <= 1:
            results = [self.scan_alert(alert, cancel) for alert in unique]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(unique))) as executor:
                # workers inherit the caller's log context (run id)
                future_to_alert = {
                    executor.submit(contextvars.copy_context().run, self.scan_alert, alert, cancel): alert
                    for alert in unique
                }
                for future in as_completed(future_to_alert):
                    alert = future_to_alert[future]
                    try:
                        results.append(future.result())
                    except Exception as e:
                        results.append(self._query_failed(AlertScanResult(alert_id=alert.id), e))

        results.sort(key=lambda r: r.alert_id)
        summary = ScanSummary(started_at=started_at, completed_at=self.clock(), results=results)
        logger.info("alert_scan_batch_complete", status=summary.status, **summary.to_counts())
        return summary
