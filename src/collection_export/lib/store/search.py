"""Paginated, access-controlled record queries.

Builds the SELECT for a collection from a filter string, a sort string and
the collection's list rule, then fetches it one bounded page at a time.
"""

from collections.abc import AsyncIterator

from loguru import logger
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from collection_export.lib.store.filter import parse_sort
from collection_export.lib.store.resolver import FieldResolver
from collection_export.models.record import Record

DEFAULT_PAGE_SIZE = 1000


def access_rule_for(resolver: FieldResolver) -> str | None:
    """Return the list rule to enforce for the resolver's principal, if any.

    Admins bypass rules. A collection without a list rule (``None``) or with
    an empty rule adds no restriction.
    """
    if resolver.request_info.is_admin:
        return None
    rule = resolver.collection.list_rule
    if rule is None or not rule.strip():
        return None
    return rule


async def build_search_query(
    resolver: FieldResolver,
    *,
    filter_expr: str = "",
    sort_expr: str = "",
) -> Select[tuple[Record]]:
    """Build the record query for the resolver's collection.

    Args:
        resolver: Field resolver bound to the target collection and principal.
        filter_expr: Filter expression; empty means no filter.
        sort_expr: Sort expression; empty means creation order.

    Returns:
        A SELECT over ``Record`` with filter, access rule and ordering applied.

    Raises:
        QueryError: If the filter, sort or access rule cannot be compiled.
    """
    stmt = select(Record).where(Record.collection_id == resolver.collection.id)

    if filter_expr.strip():
        stmt = stmt.where(await resolver.build_condition(filter_expr))

    order_by = []
    if sort_expr.strip():
        order_by = await resolver.build_order_by(parse_sort(sort_expr))

    rule = access_rule_for(resolver)
    if rule is not None:
        stmt = stmt.where(await resolver.build_condition(rule))

    if not order_by:
        order_by = [Record.created.asc()]
    # Unique tiebreaker so pages never overlap
    return stmt.order_by(*order_by, Record.id.asc())


async def fetch_page(
    session: AsyncSession,
    resolver: FieldResolver,
    *,
    filter_expr: str = "",
    sort_expr: str = "",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[Record]:
    """Fetch one page of records.

    Args:
        session: Database session.
        resolver: Field resolver bound to the target collection and principal.
        filter_expr: Filter expression; empty means no filter.
        sort_expr: Sort expression; empty means creation order.
        page: 1-based page number.
        page_size: Maximum records per page.

    Returns:
        The page's records in query order.

    Raises:
        ValueError: If page or page_size is not positive.
        QueryError: If the query cannot be compiled.
    """
    if page < 1:
        msg = f"page must be >= 1, got {page}"
        raise ValueError(msg)
    if page_size < 1:
        msg = f"page_size must be >= 1, got {page_size}"
        raise ValueError(msg)

    stmt = await build_search_query(resolver, filter_expr=filter_expr, sort_expr=sort_expr)
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def iter_export_pages(
    session: AsyncSession,
    resolver: FieldResolver,
    *,
    filter_expr: str = "",
    sort_expr: str = "",
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AsyncIterator[list[Record]]:
    """Yield successive pages until the first page shorter than ``page_size``.

    The short (possibly empty) terminating page is yielded too. The next page
    is only fetched after the consumer has finished with the previous one.
    """
    page = 1
    while True:
        records = await fetch_page(
            session,
            resolver,
            filter_expr=filter_expr,
            sort_expr=sort_expr,
            page=page,
            page_size=page_size,
        )
        logger.debug(f"Fetched page {page} of {resolver.collection.name}: {len(records)} records")
        yield records
        if len(records) < page_size:
            break
        page += 1
