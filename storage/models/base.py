"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base, common mixins and the exact
decimal column type used by all ORM models of the desk.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: Common timestamp columns
- ExactDecimal: Decimal stored as text, exact on every backend

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from core.clock import ensure_utc, utcnow
from core.money import normalize, to_decimal


class ExactDecimal(TypeDecorator):
    """
    Decimal column persisted as its string form.

    SQLite has no fixed-point type and NUMERIC values come back
    as floats; storing the canonical string keeps cash and
    average prices exact across many trades.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return format(normalize(to_decimal(value)), "f")

    def process_result_value(self, value: Any, dialect: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always reads back as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[datetime]:
        return ensure_utc(value)

    def process_result_value(self, value: Any, dialect: Any) -> Optional[datetime]:
        return ensure_utc(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All models of the desk inherit from this base.
    """

    type_annotation_map = {
        datetime: UTCDateTime(),
        Decimal: ExactDecimal(),
    }


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    Values are set Python-side so ordering by created_at is
    stable on SQLite, whose CURRENT_TIMESTAMP has one-second
    resolution.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="Last update timestamp (UTC)"
    )
