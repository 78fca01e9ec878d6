"""Declarative base and shared column mixins."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from collection_export.core.security import new_record_id


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without timezone support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class RecordIdMixin:
    """Primary key of 15 random lowercase alphanumeric characters."""

    id: Mapped[str] = mapped_column(String(15), primary_key=True, default=new_record_id)


class TimestampMixin:
    """Created/updated timestamps maintained on the Python side."""

    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
