"""Dotted field path resolution against a record and its expansions."""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from collection_export.lib.exporter.formatter import format_value
from collection_export.lib.store.expand import ExpansionMap
from collection_export.models.record import Record


class HeaderLike(Protocol):
    field_name: str
    timezone: str | None
    value_map: Mapping[str, Any] | None


def header_split_map(headers: Iterable[HeaderLike]) -> dict[str, list[str]]:
    """Map each header's field path to its dot-separated segments."""
    return {header.field_name: header.field_name.split(".") for header in headers}


def expands_from_split_map(split_map: Mapping[str, list[str]]) -> set[str]:
    """Return the relation paths that must be expanded to resolve every header.

    Each path minus its last segment; single-segment paths need no expansion.
    """
    return {".".join(segments[:-1]) for segments in split_map.values() if len(segments) > 1}


def resolve_value(record: Record, segments: list[str], expansions: ExpansionMap) -> Any:
    """Walk relation segments through the expansions and read the final field.

    Returns ``""`` when any relation on the way is missing, so sparse
    relations produce blank cells instead of errors.
    """
    current = record
    for name in segments[:-1]:
        related = expansions.get(current.id, name)
        if not isinstance(related, Record):
            return ""
        current = related
    return current.get(segments[-1])


def resolve_cell(
    record: Record,
    header: HeaderLike,
    segments: list[str],
    expansions: ExpansionMap,
) -> Any:
    """Resolve and format one cell for a header."""
    value = resolve_value(record, segments, expansions)
    return format_value(value, header.timezone, header.value_map)


def resolve_row(
    record: Record,
    headers: list[HeaderLike],
    split_map: Mapping[str, list[str]],
    expansions: ExpansionMap,
) -> list[Any]:
    """Resolve a full row, one formatted cell per header in declared order."""
    return [resolve_cell(record, header, split_map[header.field_name], expansions) for header in headers]
