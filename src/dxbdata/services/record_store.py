"""
Record Store

Read-only query interface over the transaction and rental ledgers. Results
come back in ascending (event_date, record_id) order and are paged lazily, so
a large ledger is never materialized at once.
"""
from datetime import date, datetime
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Union

from sqlalchemy.orm import sessionmaker

from config.settings import settings
from src.dxbdata.db.repository import LedgerRepository, RentalRepository, TransactionRepository
from src.dxbdata.db.session import get_db_session
from src.dxbdata.matching.criteria import matches
from src.dxbdata.models.alert import AlertCriteria
from src.dxbdata.models.record import Record, RecordKind
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

DateBound = Union[date, datetime]


class RecordStore(Protocol):
    """Interface for ledger reads. Implementations differ only in storage."""

    def query_records(
        self,
        kind: RecordKind,
        criteria: Optional[AlertCriteria] = None,
        since: Optional[DateBound] = None,
        until: Optional[DateBound] = None,
    ) -> Iterable[Record]:
        """
        Records of one kind with since < event_date < until.

        criteria may be pushed down; callers re-apply matches() for the
        authoritative decision. Iteration may raise when the store fails.
        """
        ...


def as_date(bound: Optional[DateBound]) -> Optional[date]:
    """
    Date part of a bound.

    Event dates carry no time, so event_date > since holds exactly when the
    event date is after the calendar date of since.
    """
    if bound is None:
        return None
    if isinstance(bound, datetime):
        return bound.date()
    return bound


class SqlRecordStore:
    """
    RecordStore over the SQL ledgers.

    Each query opens its own session from the factory and streams rows with
    yield_per, so the store can be shared by scanner threads.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        page_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.page_size = page_size or settings.record_page_size
        self.repositories: Dict[RecordKind, LedgerRepository] = {
            RecordKind.TRANSACTION: TransactionRepository(),
            RecordKind.RENTAL: RentalRepository(),
        }

    def query_records(
        self,
        kind: RecordKind,
        criteria: Optional[AlertCriteria] = None,
        since: Optional[DateBound] = None,
        until: Optional[DateBound] = None,
    ) -> Iterator[Record]:
        repository = self.repositories[RecordKind(kind)]
        query = repository.select_records(criteria, as_date(since), as_date(until))
        logger.debug("record_query_started", kind=RecordKind(kind).value, since=since, until=until)

        with get_db_session(self.session_factory) as session:
            rows = session.execute(query.execution_options(yield_per=self.page_size)).scalars()
            for row in rows:
                yield row.to_record()


class InMemoryRecordStore:
    """RecordStore over records held in memory (tests and offline analysis)."""

    def __init__(self, records: Optional[Iterable[Record]] = None):
        self.records: List[Record] = list(records or [])

    def add(self, *records: Record) -> None:
        self.records.extend(records)

    def query_records(
        self,
        kind: RecordKind,
        criteria: Optional[AlertCriteria] = None,
        since: Optional[DateBound] = None,
        until: Optional[DateBound] = None,
    ) -> Iterator[Record]:
        kind = RecordKind(kind)
        since, until = as_date(since), as_date(until)
        selected = [
            record for record in self.records
            if record.kind is kind
            and (since is None or record.event_date > since)
            and (until is None or record.event_date < until)
            and (criteria is None or matches(record, criteria))
        ]
        selected.sort(key=lambda r: (r.event_date, r.record_id))
        return iter(selected)
