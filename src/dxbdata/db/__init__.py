"""
Database Package

ORM models, connection management and repositories for the record ledgers,
price alerts, the trigger ledger and scan runs.
"""
from src.dxbdata.db.base import Base
from src.dxbdata.db.session import (
    engine,
    SessionLocal,
    get_db_session,
    health_check,
    close_connections,
    create_all_tables,
    with_retry,
)
from src.dxbdata.db.models import (
    Transaction,
    Rental,
    PriceAlert,
    AlertTrigger,
    ScanRun,
)
from src.dxbdata.db.repository import (
    BaseRepository,
    LedgerRepository,
    TransactionRepository,
    RentalRepository,
    AlertRepository,
    TriggerLedgerRepository,
    ScanRunRepository,
)

__all__ = [
    # Base
    "Base",
    # Session management
    "engine",
    "SessionLocal",
    "get_db_session",
    "health_check",
    "close_connections",
    "create_all_tables",
    "with_retry",
    # Models
    "Transaction",
    "Rental",
    "PriceAlert",
    "AlertTrigger",
    "ScanRun",
    # Repositories
    "BaseRepository",
    "LedgerRepository",
    "TransactionRepository",
    "RentalRepository",
    "AlertRepository",
    "TriggerLedgerRepository",
    "ScanRunRepository",
]
