"""Relation expansion for a page of records.

Expanded related records are kept in an :class:`ExpansionMap` keyed by
``(record_id, relation_field)`` instead of being attached to the records
themselves. The map is filled once per page and only read afterwards.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collection_export.lib.store.resolver import FieldResolver
from collection_export.models.collection import Collection
from collection_export.models.record import Record


class ExpansionMap:
    """Read-mostly adjacency map from ``(record_id, relation_field)`` to the related record."""

    def __init__(self) -> None:
        self._edges: dict[tuple[str, str], Record] = {}

    def add(self, record_id: str, relation_field: str, related: Record) -> None:
        self._edges[(record_id, relation_field)] = related

    def get(self, record_id: str, relation_field: str) -> Record | None:
        return self._edges.get((record_id, relation_field))

    def __contains__(self, key: object) -> bool:
        return key in self._edges

    def __len__(self) -> int:
        return len(self._edges)


async def _fetch_related(
    session: AsyncSession,
    resolver: FieldResolver,
    target: Collection,
    ids: set[str],
) -> dict[str, Record]:
    """Fetch related records the principal is allowed to view."""
    if not ids:
        return {}

    stmt = select(Record).where(Record.collection_id == target.id, Record.id.in_(sorted(ids)))
    if not resolver.request_info.is_admin:
        # Collections without a view rule are admin-only for expansion
        if target.view_rule is None:
            return {}
        if target.view_rule.strip():
            stmt = stmt.where(await resolver.for_collection(target).build_condition(target.view_rule))

    result = await session.execute(stmt)
    return {record.id: record for record in result.scalars().all()}


async def expand_records(
    session: AsyncSession,
    resolver: FieldResolver,
    records: Iterable[Record],
    expand_paths: Iterable[str],
) -> ExpansionMap:
    """Expand the given relation paths for a page of records.

    Each path is walked level by level with one query per level. Relations
    that are unknown, multi-valued, empty or not viewable are skipped; the
    field path resolver renders them as blank cells.

    Args:
        session: Database session.
        resolver: Field resolver of the records' collection and principal.
        records: The page of records to expand.
        expand_paths: Dotted relation paths, e.g. ``author`` or ``author.team``.

    Returns:
        The filled expansion map.

    Raises:
        QueryError: If a related collection's view rule cannot be compiled.
    """
    expansions = ExpansionMap()
    roots = list(records)

    for path in sorted(set(expand_paths)):
        if not path:
            continue
        current = roots
        collection = resolver.collection
        for name in path.split("."):
            schema_field = collection.get_field(name)
            if schema_field is None or not schema_field.is_single_relation:
                break
            target = await resolver.find_collection(schema_field.related_collection)
            if target is None:
                break

            missing: set[str] = set()
            for record in current:
                related_id = (record.data or {}).get(name)
                if (record.id, name) not in expansions and isinstance(related_id, str) and related_id:
                    missing.add(related_id)
            fetched = await _fetch_related(session, resolver, target, missing)

            next_level: list[Record] = []
            for record in current:
                related = expansions.get(record.id, name)
                if related is None:
                    related_id = (record.data or {}).get(name)
                    if not isinstance(related_id, str) or not related_id:
                        continue
                    related = fetched.get(related_id)
                    if related is None:
                        continue
                    expansions.add(record.id, name, related)
                next_level.append(related)

            current = next_level
            collection = target
            if not current:
                break

    return expansions
