"""ORM model registry — import all models so ``Base.metadata`` knows every table."""

from collection_export.models.admin import Admin
from collection_export.models.base import Base
from collection_export.models.collection import Collection
from collection_export.models.record import Record

__all__ = [
    "Admin",
    "Base",
    "Collection",
    "Record",
]
