"""Record store query layer — filter parsing, field resolution, pagination and expansion.

Only the model-independent pieces are re-exported here; import the resolver,
search and expand modules directly.
"""

from collection_export.lib.store.errors import (
    FilterSyntaxError,
    MultiMatchFieldError,
    QueryError,
    RecordNotFoundError,
    UnknownFieldError,
)
from collection_export.lib.store.filter import SortDirection, SortField, parse_filter, parse_sort
from collection_export.lib.store.schema import SYSTEM_FIELDS, CollectionType, FieldType, SchemaField

__all__ = [
    "SYSTEM_FIELDS",
    "CollectionType",
    "FieldType",
    "FilterSyntaxError",
    "MultiMatchFieldError",
    "QueryError",
    "RecordNotFoundError",
    "SchemaField",
    "SortDirection",
    "SortField",
    "UnknownFieldError",
    "parse_filter",
    "parse_sort",
]
