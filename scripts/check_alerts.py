"""
Check Price Alerts

Scans every active price alert against new transactions, records the
matches in the trigger ledger, notifies subscribers and stores a scan run
row with the batch counters.

Interrupting the script (Ctrl+C) stops the scan cooperatively; cancelled
alerts keep their watermark and are picked up again on the next run.
"""
import argparse
import signal
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.dxbdata.db.repository import ScanRunRepository
from src.dxbdata.db.session import close_connections, get_db_session
from src.dxbdata.notifications.telegram import default_notifier
from src.dxbdata.pipelines.alert_scanner import AlertScanner
from src.dxbdata.services.alert_store import SqlAlertStore, SqlTriggerLedger
from src.dxbdata.services.record_store import SqlRecordStore
from src.dxbdata.utils.logger import get_logger, log_context, setup_logging

setup_logging()
logger = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Scan active price alerts for new matching transactions")
    parser.add_argument(
        '--max-workers',
        type=int,
        default=None,
        help='Alerts scanned concurrently (default: ALERT_SCAN_MAX_WORKERS)'
    )
    args = parser.parse_args()

    run_repo = ScanRunRepository()
    with get_db_session() as session:
        run_id = run_repo.create_run(session).id

    scanner = AlertScanner(
        record_store=SqlRecordStore(),
        alert_store=SqlAlertStore(),
        ledger=SqlTriggerLedger(),
        notifier=default_notifier(),
        max_workers=args.max_workers,
    )
    signal.signal(signal.SIGINT, lambda signum, frame: scanner.cancel())

    try:
        with log_context(run_id=run_id):
            summary = scanner.scan_all()
    except Exception as e:
        logger.error("alert_check_failed", run_id=run_id, error=str(e), error_type=type(e).__name__)
        with get_db_session() as session:
            run_repo.complete_run(session, run_id, status="failure", error_message=str(e))
        return 1
    finally:
        signal.signal(signal.SIGINT, signal.default_int_handler)

    counts = summary.to_counts()
    errors = [f"alert {r.alert_id}: {r.error}" for r in summary.results if r.error]
    with get_db_session() as session:
        run_repo.complete_run(
            session,
            run_id,
            status=summary.status,
            alerts_scanned=summary.alerts_scanned,
            new_triggers=summary.new_triggers,
            failed_alerts=summary.failed_alerts,
            cancelled_alerts=summary.cancelled_alerts,
            error_message="\n".join(errors) or None,
            details=counts,
        )

    logger.info("alert_check_complete", run_id=run_id, status=summary.status, **counts)
    close_connections()
    return 0 if summary.status != "failure" else 1


if __name__ == "__main__":
    sys.exit(main())
