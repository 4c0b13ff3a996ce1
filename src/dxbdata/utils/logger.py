"""
Logging Configuration

structlog setup shared by the batch scripts and the library modules. Entries
carry the service name and environment, plus whatever log_context() has bound
(scan run id, alert id) for the current thread or task.
"""
import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.types import EventDict, Processor

from config.settings import settings

SERVICE_NAME = "dxbdata"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict["environment"] = settings.environment
    return event_dict


def _processors(log_format: str) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]
    if log_format == "json":
        return processors + [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return processors + [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer()]


def setup_logging(
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> structlog.BoundLogger:
    """
    Configure structured logging for a batch run.

    Args:
        level: Log level override (defaults to settings.log_level)
        log_format: "json" or "console" (defaults to settings.log_format)

    Returns:
        Logger bound to the service name
    """
    level = (level or settings.log_level).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=_processors(log_format or settings.log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(SERVICE_NAME)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Module logger; pass __name__."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


def log_context(**fields):
    """
    Bind fields to every entry logged inside the with-block.

    Usage:
        with log_context(run_id=run.id):
            scanner.scan_all()
    """
    return structlog.contextvars.bound_contextvars(**fields)
