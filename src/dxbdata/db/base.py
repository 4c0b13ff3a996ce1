"""
SQLAlchemy Base and Mixins

Provides declarative base and reusable mixins for database models.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """
    Base class for all database models.

    Provides common functionality and type hints for SQLAlchemy models.
    """

    # Type annotation for primary keys
    id: Any


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamp columns.

    created_at doubles as the ingestion time of ledger rows.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp when record was created"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Timestamp when record was last updated"
    )


def import_all_models():
    """
    Import all models to register them with SQLAlchemy Base.

    Must run before create_all so every table is known to the metadata.
    """
    from src.dxbdata.db import models  # noqa: F401
