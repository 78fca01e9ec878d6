"""Collection schema field definitions."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class FieldType(StrEnum):
    """Supported schema field types."""

    TEXT = "text"
    EMAIL = "email"
    URL = "url"
    NUMBER = "number"
    BOOL = "bool"
    DATE = "date"
    SELECT = "select"
    JSON = "json"
    FILE = "file"
    RELATION = "relation"


class CollectionType(StrEnum):
    """Kind of collection. Auth collections hold principals that can own exports."""

    BASE = "base"
    AUTH = "auth"


# Fields every record has regardless of its collection schema
SYSTEM_FIELDS: dict[str, FieldType] = {
    "id": FieldType.TEXT,
    "created": FieldType.DATE,
    "updated": FieldType.DATE,
    "collectionId": FieldType.TEXT,
    "collectionName": FieldType.TEXT,
}


@dataclass(frozen=True)
class SchemaField:
    """A single field definition in a collection schema."""

    name: str
    type: FieldType
    required: bool = False
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchemaField":
        """Build a field from its stored JSON form.

        Raises:
            ValueError: If the name is missing or the type is unknown.
        """
        name = data.get("name")
        if not name:
            msg = "schema field requires a name"
            raise ValueError(msg)
        return cls(
            name=name,
            type=FieldType(data.get("type", FieldType.TEXT)),
            required=bool(data.get("required", False)),
            options=dict(data.get("options") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": str(self.type),
            "required": self.required,
            "options": dict(self.options),
        }

    @property
    def is_relation(self) -> bool:
        return self.type == FieldType.RELATION

    @property
    def is_single_relation(self) -> bool:
        """True for relations limited to one related record (``maxSelect == 1``)."""
        return self.is_relation and self.options.get("maxSelect") == 1

    @property
    def related_collection(self) -> str | None:
        """Id or name of the related collection for relation fields."""
        if not self.is_relation:
            return None
        return self.options.get("collectionId")
