"""Record model — a single row of a collection stored as a JSON document."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from collection_export.lib.store.schema import FieldType
from collection_export.models.base import Base, RecordIdMixin, TimestampMixin, ensure_aware
from collection_export.models.collection import Collection


def format_date(value: datetime) -> str:
    """Render a datetime in the storage layout ``YYYY-MM-DD HH:MM:SS.mmmZ`` (UTC)."""
    value = ensure_aware(value).astimezone(UTC)
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_date(value: Any) -> datetime | None:
    """Parse a stored date value into an aware datetime.

    Returns None for empty values and for strings that are not dates.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str):
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value))
    except ValueError:
        return None


class Record(Base, RecordIdMixin, TimestampMixin):
    """A record belonging to a collection.

    Schema field values live in ``data``; system fields (``id``, ``created``,
    ``updated``, ``collectionId``, ``collectionName``) come from columns.
    """

    __tablename__ = "records"

    collection_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("collections.id", ondelete="CASCADE"),
        nullable=False,
    )
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    collection: Mapped[Collection] = relationship(lazy="joined")

    __table_args__ = (Index("ix_records_collection_created", "collection_id", "created"),)

    @property
    def collection_name(self) -> str:
        return self.collection.name

    def get(self, name: str) -> Any:
        """Return a field value by name, coercing ``date`` fields to datetimes."""
        if name == "id":
            return self.id
        if name == "created":
            return ensure_aware(self.created) if self.created else None
        if name == "updated":
            return ensure_aware(self.updated) if self.updated else None
        if name == "collectionId":
            return self.collection_id
        if name == "collectionName":
            return self.collection.name

        value = (self.data or {}).get(name)
        schema_field = self.collection.get_field(name)
        if schema_field is not None and schema_field.type == FieldType.DATE:
            return parse_date(value)
        return value

    def get_string(self, name: str) -> str:
        """Return a field value as a string; missing values become ``""``."""
        value = self.get(name)
        if value is None:
            return ""
        return str(value)

    def set(self, name: str, value: Any) -> None:
        """Set a schema field value. Datetimes are stored in the storage date layout."""
        if isinstance(value, datetime):
            value = format_date(value)
        # Reassign so SQLAlchemy notices the JSON change
        self.data = {**(self.data or {}), name: value}
