"""Collection model — a named record schema with access rules."""

from typing import Any

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from collection_export.lib.store.schema import CollectionType, SchemaField
from collection_export.models.base import Base, RecordIdMixin, TimestampMixin


class Collection(Base, RecordIdMixin, TimestampMixin):
    """A group of records sharing a schema.

    ``list_rule`` and ``view_rule`` are filter expressions restricting what
    non-admin principals may list or view. ``None`` means no rule is
    defined; an empty string means everyone may access the records.
    """

    __tablename__ = "collections"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=CollectionType.BASE)
    schema: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    list_rule: Mapped[str | None] = mapped_column(Text, nullable=True)
    view_rule: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def fields(self) -> list[SchemaField]:
        return [SchemaField.from_dict(item) for item in self.schema or []]

    def get_field(self, name: str) -> SchemaField | None:
        """Return the schema field with the given name, if any."""
        for item in self.fields:
            if item.name == name:
                return item
        return None

    @property
    def is_auth(self) -> bool:
        return self.type == CollectionType.AUTH
