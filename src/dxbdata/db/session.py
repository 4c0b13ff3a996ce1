"""
Database Session Management

Engine construction, the session factory and the unit-of-work helper used by
the repositories. The alert scanner opens one session per store operation, so
sessions are never shared between worker threads.
"""
import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event, exc, pool, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable)

TRANSIENT_ERRORS = (exc.OperationalError, exc.DisconnectionError)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for database_url (defaults to settings.database_url).

    Server databases get the configured pool and pre-ping; SQLite files and
    in-memory databases keep SQLAlchemy's default pool and enforce foreign
    keys so trigger rows follow their alert on delete.
    """
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(url, echo=settings.database_echo)
        event.listen(sqlite_engine, "connect", _enable_sqlite_foreign_keys)
        return sqlite_engine

    return create_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.database_echo,
    )


engine = build_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


@event.listens_for(pool.Pool, "invalidate")
def receive_invalidate(dbapi_conn, connection_record, exception):
    """Log connections dropped from the pool (server restarts, timeouts)."""
    logger.warning(
        "database_connection_invalidated",
        exception=str(exception) if exception else None,
    )


@contextmanager
def get_db_session(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Unit of work: commit on success, roll back and re-raise on error.

    Usage:
        with get_db_session() as session:
            alerts = AlertRepository().get_active(session)

    Args:
        session_factory: Factory to open the session from (defaults to SessionLocal)

    Yields:
        Database session, closed on exit
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(
            "database_session_rollback",
            error=str(e),
            error_type=type(e).__name__,
            database_error=isinstance(e, exc.SQLAlchemyError),
        )
        raise
    finally:
        session.close()


def health_check(session_factory: Optional[sessionmaker] = None) -> bool:
    """
    Check that the database answers a trivial query.

    Returns:
        True if database is accessible, False otherwise
    """
    try:
        with get_db_session(session_factory) as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)
        return False

    logger.info("database_health_check_success")
    return True


def close_connections():
    """Dispose of the engine's pool; call once on process shutdown."""
    engine.dispose()
    logger.info("database_connections_closed")


def create_all_tables(bind: Optional[Engine] = None):
    """
    Create every table known to the models.

    Bootstrap and tests only; no migrations are shipped, and existing tables
    are left as they are.
    """
    from src.dxbdata.db.base import Base, import_all_models

    import_all_models()
    Base.metadata.create_all(bind=bind or engine)
    logger.info("database_tables_created", tables=sorted(Base.metadata.tables))


def with_retry(max_retries: int = 3, retry_delay: float = 1.0) -> Callable[[F], F]:
    """
    Retry a database read on transient connection errors.

    The delay grows linearly with the attempt number. Only use it on
    operations that are safe to repeat, such as loading alert definitions.

    Args:
        max_retries: Total attempts before the last error is raised
        retry_delay: Base delay between attempts in seconds
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except TRANSIENT_ERRORS as e:
                    if attempt == max_retries:
                        logger.error(
                            "database_operation_failed_after_retries",
                            operation=func.__qualname__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise
                    logger.warning(
                        "database_operation_retry",
                        operation=func.__qualname__,
                        attempt=attempt,
                        max_retries=max_retries,
                        error=str(e),
                    )
                    time.sleep(retry_delay * attempt)

        return wrapper
    return decorator
