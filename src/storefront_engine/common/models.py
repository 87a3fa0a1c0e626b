"""Declarative base and shared column mixins."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Money columns: 12 digits, 2 decimal places
Money = Numeric(12, 2)


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def status_enum(enum_cls: type[enum.Enum]) -> Enum:
    """Store a str-valued enum by value in a VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
