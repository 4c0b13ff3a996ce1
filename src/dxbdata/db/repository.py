"""
Repository Pattern for Data Access

Query builders for the record ledgers, alert and trigger ledger operations,
and scan run tracking.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import Select, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.dxbdata.db.models import AlertTrigger, PriceAlert, Rental, ScanRun, Transaction
from src.dxbdata.models.alert import AlertCriteria, AlertKind
from src.dxbdata.models.record import Record
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class BaseRepository:
    """
    Base repository with common CRUD operations.

    Generic repository that can be extended for specific models.
    """

    def __init__(self, model: Type[T]):
        self.model = model
        logger.debug("repository_initialized", model=model.__name__)

    def get_by_id(self, session: Session, id_value: Any) -> Optional[T]:
        """
        Get single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value

        Returns:
            Model instance or None
        """
        result = session.get(self.model, id_value)
        logger.debug(
            "repository_get_by_id",
            model=self.model.__name__,
            id=id_value,
            found=result is not None
        )
        return result

    def create(self, session: Session, **kwargs) -> T:
        """
        Create new record.

        Args:
            session: Database session
            **kwargs: Model field values

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        session.add(instance)
        session.flush()
        logger.info("repository_created", model=self.model.__name__, id=getattr(instance, 'id', None))
        return instance

    def delete(self, session: Session, id_value: Any) -> bool:
        """
        Delete record (hard delete).

        Returns:
            True if deleted, False if not found
        """
        instance = self.get_by_id(session, id_value)
        if not instance:
            logger.warning("repository_delete_not_found", model=self.model.__name__, id=id_value)
            return False

        session.delete(instance)
        session.flush()
        logger.info("repository_deleted", model=self.model.__name__, id=id_value)
        return True

    def count(self, session: Session) -> int:
        """Count total records."""
        count = session.scalar(select(func.count()).select_from(self.model))
        logger.debug("repository_count", model=self.model.__name__, count=count)
        return count


class LedgerRepository(BaseRepository):
    """
    Read-side queries over an append-only record ledger.

    Subclasses name the id, date and amount columns of their table.
    """

    id_column: str
    date_column: str
    amount_column: str

    def select_records(
        self,
        criteria: Optional[AlertCriteria] = None,
        since: Optional[date] = None,
        until: Optional[date] = None,
    ) -> Select:
        """
        Build the ordered ledger query.

        Filters are a superset of the criteria match: area and building use
        case-insensitive containment, property type a case-insensitive exact
        comparison, and only absolute-amount thresholds are pushed down.

        Args:
            criteria: Optional alert criteria to push down
            since: Exclusive lower bound on the event date
            until: Exclusive upper bound on the event date

        Returns:
            SELECT ordered by (event date, record id)
        """
        model = self.model
        event_date = getattr(model, self.date_column)
        record_id = getattr(model, self.id_column)

        query = select(model)
        if since is not None:
            query = query.where(event_date > since)
        if until is not None:
            query = query.where(event_date < until)

        if criteria is not None:
            if criteria.area_name:
                query = query.where(model.area_name.icontains(criteria.area_name.strip(), autoescape=True))
            if criteria.building_name:
                query = query.where(model.building_name.icontains(criteria.building_name.strip(), autoescape=True))
            if criteria.property_type:
                query = query.where(
                    func.lower(func.trim(model.property_type)) == criteria.property_type.strip().lower()
                )
            amount = getattr(model, self.amount_column)
            if criteria.kind is AlertKind.PRICE_BELOW:
                query = query.where(amount < criteria.threshold)
            elif criteria.kind is AlertKind.PRICE_ABOVE:
                query = query.where(amount > criteria.threshold)

        return query.order_by(event_date, record_id)

    def add_records(self, session: Session, records: Iterable[Record]) -> int:
        """
        Load records into the ledger (bootstrap and tests).

        Returns:
            Number of rows added
        """
        rows = [self.row_from_record(record) for record in records]
        session.add_all(rows)
        session.flush()
        logger.info("ledger_records_added", model=self.model.__name__, count=len(rows))
        return len(rows)

    def row_from_record(self, record: Record):
        raise NotImplementedError


class TransactionRepository(LedgerRepository):
    """Repository for the sale transaction ledger."""

    id_column = "transaction_id"
    date_column = "instance_date"
    amount_column = "actual_worth"

    def __init__(self):
        super().__init__(Transaction)

    def row_from_record(self, record: Record) -> Transaction:
        return Transaction(
            transaction_id=record.record_id,
            instance_date=record.event_date,
            area_name=record.area_name,
            building_name=record.building_name,
            project_name=record.project_name,
            master_project=record.master_project,
            property_type=record.property_type,
            property_sub_type=record.property_sub_type,
            rooms=record.rooms,
            procedure_area=record.size_sqm,
            actual_worth=record.amount,
            meter_sale_price=record.unit_price,
            reg_type=record.registration_type,
            nearest_metro=record.nearest_metro,
            nearest_mall=record.nearest_mall,
            nearest_landmark=record.nearest_landmark,
        )


class RentalRepository(LedgerRepository):
    """Repository for the rental contract ledger."""

    id_column = "contract_id"
    date_column = "contract_start_date"
    amount_column = "annual_amount"

    def __init__(self):
        super().__init__(Rental)

    def row_from_record(self, record: Record) -> Rental:
        return Rental(
            contract_id=record.record_id,
            contract_start_date=record.event_date,
            area_name=record.area_name,
            building_name=record.building_name,
            project_name=record.project_name,
            master_project=record.master_project,
            property_type=record.property_type,
            property_sub_type=record.property_sub_type,
            rooms=record.rooms,
            actual_area=record.size_sqm,
            annual_amount=record.amount,
            nearest_metro=record.nearest_metro,
            nearest_mall=record.nearest_mall,
            nearest_landmark=record.nearest_landmark,
        )


class AlertRepository(BaseRepository):
    """Repository for PriceAlert model."""

    def __init__(self):
        super().__init__(PriceAlert)

    def get_active(self, session: Session) -> List[PriceAlert]:
        """
        Get all active alerts ordered by id.

        Args:
            session: Database session

        Returns:
            List of active PriceAlert rows
        """
        query = select(PriceAlert).where(PriceAlert.is_active.is_(True)).order_by(PriceAlert.id)
        return session.execute(query).scalars().all()

    def advance_watermark(self, session: Session, alert_id: int, scanned_at: datetime) -> bool:
        """
        Move an alert's watermark forward to scanned_at.

        A timestamp older than (or equal to) the stored watermark is ignored.

        Returns:
            True if the watermark moved
        """
        stmt = (
            update(PriceAlert)
            .where(PriceAlert.id == alert_id)
            .where(or_(PriceAlert.last_scanned_at.is_(None), PriceAlert.last_scanned_at < scanned_at))
            .values(last_scanned_at=scanned_at)
            .execution_options(synchronize_session=False)
        )
        moved = session.execute(stmt).rowcount > 0
        logger.debug("alert_watermark_update", alert_id=alert_id, scanned_at=scanned_at, moved=moved)
        return moved


class TriggerLedgerRepository(BaseRepository):
    """Repository for the alert trigger ledger."""

    def __init__(self):
        super().__init__(AlertTrigger)

    def exists(self, session: Session, alert_id: int, record_id: str) -> bool:
        query = select(AlertTrigger.id).where(
            AlertTrigger.alert_id == alert_id,
            AlertTrigger.record_id == record_id,
        )
        return session.execute(query.limit(1)).first() is not None

    def append(
        self,
        session: Session,
        alert_id: int,
        record_id: str,
        triggered_at: Optional[datetime] = None
    ) -> bool:
        """
        Record a trigger for (alert, record).

        The unique constraint rejects duplicates; on a duplicate the session
        is rolled back, so call this in a session of its own.

        Returns:
            True if appended, False if the pair was already recorded
        """
        session.add(AlertTrigger(
            alert_id=alert_id,
            record_id=record_id,
            triggered_at=triggered_at or datetime.now(),
        ))
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            logger.info("trigger_already_recorded", alert_id=alert_id, record_id=record_id)
            return False

        logger.debug("trigger_appended", alert_id=alert_id, record_id=record_id)
        return True

    def history(self, session: Session, alert_id: int, limit: int = 50) -> List[AlertTrigger]:
        """Most recent triggers of an alert first."""
        query = (
            select(AlertTrigger)
            .where(AlertTrigger.alert_id == alert_id)
            .order_by(desc(AlertTrigger.triggered_at), desc(AlertTrigger.id))
            .limit(limit)
        )
        return session.execute(query).scalars().all()


class ScanRunRepository(BaseRepository):
    """Repository for ScanRun model (alert scan tracking)."""

    def __init__(self):
        super().__init__(ScanRun)

    def create_run(self, session: Session, started_at: Optional[datetime] = None) -> ScanRun:
        """
        Create new scan run.

        Args:
            session: Database session
            started_at: Start timestamp (defaults to now)

        Returns:
            ScanRun instance
        """
        if started_at is None:
            started_at = datetime.now()

        run = ScanRun(status='running', started_at=started_at)
        session.add(run)
        session.flush()

        logger.info("scan_run_created", run_id=run.id)
        return run

    def complete_run(
        self,
        session: Session,
        run_id: int,
        status: str,
        alerts_scanned: int = 0,
        new_triggers: int = 0,
        failed_alerts: int = 0,
        cancelled_alerts: int = 0,
        error_message: Optional[str] = None,
        details: Optional[Dict] = None
    ) -> ScanRun:
        """
        Mark scan run as complete.

        Args:
            session: Database session
            run_id: Run ID
            status: Final status (success, failure, partial)
            alerts_scanned: Alerts processed
            new_triggers: Ledger entries appended
            failed_alerts: Alerts whose query failed
            cancelled_alerts: Alerts cancelled before completion
            error_message: Error message if failed
            details: Full scan counters

        Returns:
            Updated ScanRun instance
        """
        run = self.get_by_id(session, run_id)
        if not run:
            raise ValueError(f"ScanRun {run_id} not found")

        run.status = status
        run.alerts_scanned = alerts_scanned
        run.new_triggers = new_triggers
        run.failed_alerts = failed_alerts
        run.cancelled_alerts = cancelled_alerts
        run.error_message = error_message
        run.details = details
        run.completed_at = datetime.now()

        session.flush()

        logger.info(
            "scan_run_completed",
            run_id=run_id,
            status=status,
            alerts_scanned=alerts_scanned,
            new_triggers=new_triggers,
            failed_alerts=failed_alerts
        )
        return run

    def get_recent_runs(self, session: Session, limit: int = 10) -> List[ScanRun]:
        query = select(ScanRun).order_by(desc(ScanRun.started_at)).limit(limit)
        return session.execute(query).scalars().all()
