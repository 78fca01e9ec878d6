"""Schema-aware field resolution and filter/sort compilation.

A :class:`FieldResolver` is bound to one collection and one request context
(the acting principal). It resolves dotted field paths through the collection
schema, crossing single-value relations, and compiles parsed filter and sort
expressions into SQLAlchemy clauses over the ``records`` table.

Relation hops compile to correlated scalar sub-queries, so a filter such as
``author.name = "ann"`` never fans out rows. Paths that would cross a
multi-value relation raise :class:`MultiMatchFieldError`.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, and_, false, func, literal, not_, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from collection_export.lib.store.errors import FilterSyntaxError, MultiMatchFieldError, QueryError, UnknownFieldError
from collection_export.lib.store.filter import (
    Comparison,
    Expression,
    Identifier,
    Literal,
    Logical,
    Operand,
    Operator,
    SortDirection,
    SortField,
    parse_filter,
)
from collection_export.lib.store.schema import SYSTEM_FIELDS, FieldType, SchemaField
from collection_export.models.admin import Admin
from collection_export.models.collection import Collection
from collection_export.models.record import Record, format_date, parse_date

_NUMERIC_TYPES = {FieldType.NUMBER}
_BOOL_TYPES = {FieldType.BOOL}


@dataclass
class RequestInfo:
    """Request context a resolver evaluates ``@request.*`` macros against."""

    method: str = "GET"
    query: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, Any] = field(default_factory=dict)
    auth_record: Record | None = None
    admin: Admin | None = None

    @property
    def is_admin(self) -> bool:
        return self.admin is not None


@dataclass(frozen=True)
class ResolvedField:
    """Schema-level resolution of a dotted field path."""

    path: str
    field_type: FieldType
    collection: Collection
    schema_field: SchemaField | None = None
    multi_match: bool = False


@dataclass(frozen=True)
class _Compiled:
    """An operand compiled to either a SQL expression or a plain Python value."""

    expression: Any = None
    field_type: FieldType = FieldType.TEXT
    is_value: bool = False
    value: Any = None
    is_system_date: bool = False


class FieldResolver:
    """Resolves field paths and compiles expressions for one collection.

    Args:
        session: Database session used to look up related collections.
        collection: The collection whose records are queried.
        request_info: The acting principal and request context.
    """

    def __init__(self, session: AsyncSession, collection: Collection, request_info: RequestInfo) -> None:
        self.session = session
        self.collection = collection
        self.request_info = request_info
        self._collections: dict[str, Collection] | None = None

    def for_collection(self, collection: Collection) -> "FieldResolver":
        """Return a resolver for another collection sharing this request context."""
        child = FieldResolver(self.session, collection, self.request_info)
        child._collections = self._collections
        return child

    async def _load_collections(self) -> dict[str, Collection]:
        if self._collections is None:
            result = await self.session.execute(select(Collection))
            collections: dict[str, Collection] = {}
            for item in result.scalars().all():
                collections[item.id] = item
                collections[item.name] = item
            self._collections = collections
        return self._collections

    async def find_collection(self, name_or_id: str | None) -> Collection | None:
        """Return a collection by id or name from the resolver's cache."""
        if not name_or_id:
            return None
        return (await self._load_collections()).get(name_or_id)

    async def resolve(self, path: str) -> ResolvedField:
        """Resolve a dotted path through the schema without touching record data.

        Args:
            path: Field path such as ``author.email``.

        Returns:
            The resolved field; ``multi_match`` is set when the path crosses
            a multi-value relation.

        Raises:
            UnknownFieldError: If a segment does not name a field or relation.
        """
        if not path or path.startswith("@"):
            raise UnknownFieldError(path, self.collection.name)

        segments = path.split(".")
        collection = self.collection
        multi_match = False
        for index, name in enumerate(segments):
            is_last = index == len(segments) - 1
            if is_last:
                if name in SYSTEM_FIELDS:
                    return ResolvedField(path, SYSTEM_FIELDS[name], collection, None, multi_match)
                schema_field = collection.get_field(name)
                if schema_field is None:
                    raise UnknownFieldError(path, self.collection.name)
                return ResolvedField(path, schema_field.type, collection, schema_field, multi_match)

            schema_field = collection.get_field(name)
            if schema_field is None or not schema_field.is_relation:
                raise UnknownFieldError(path, self.collection.name)
            if not schema_field.is_single_relation:
                multi_match = True
            target = await self.find_collection(schema_field.related_collection)
            if target is None:
                raise UnknownFieldError(path, self.collection.name)
            collection = target

        raise UnknownFieldError(path, self.collection.name)

    async def build_condition(self, expression: str) -> ColumnElement[bool]:
        """Compile a filter string into a WHERE clause over ``Record``.

        Raises:
            QueryError: If the expression is malformed or names unknown fields.
        """
        return await self._compile_expression(parse_filter(expression))

    async def build_order_by(self, sort_fields: list[SortField]) -> list[ColumnElement[Any]]:
        """Compile sort fields into ORDER BY clauses over ``Record``.

        Raises:
            QueryError: If a sort field is a macro or cannot be resolved.
        """
        clauses: list[ColumnElement[Any]] = []
        for sort_field in sort_fields:
            if sort_field.name.startswith("@"):
                raise FilterSyntaxError(sort_field.name, "macros cannot be sorted on")
            segments = sort_field.name.split(".")
            expression, _ = await self._field_expression(Record, self.collection, segments, sort_field.name)
            clauses.append(expression.desc() if sort_field.direction == SortDirection.DESC else expression.asc())
        return clauses

    async def _compile_expression(self, node: Expression) -> ColumnElement[bool]:
        if isinstance(node, Logical):
            parts = [await self._compile_expression(child) for child in node.operands]
            return and_(*parts) if node.op == "and" else or_(*parts)
        return await self._compile_comparison(node)

    async def _compile_comparison(self, node: Comparison) -> ColumnElement[bool]:
        left = await self._compile_operand(node.left)
        right = await self._compile_operand(node.right)

        if left.is_value and right.is_value:
            return true() if _compare_values(left.value, node.op, right.value) else false()

        # Coerce plain values to the type of the field on the other side
        if left.is_value:
            left = _coerce_value(left.value, right)
        if right.is_value:
            right = _coerce_value(right.value, left)

        lhs = _null_safe(left)
        rhs = _null_safe(right)

        match node.op:
            case Operator.EQ:
                return lhs == rhs
            case Operator.NEQ:
                return lhs != rhs
            case Operator.GT:
                return lhs > rhs
            case Operator.GTE:
                return lhs >= rhs
            case Operator.LT:
                return lhs < rhs
            case Operator.LTE:
                return lhs <= rhs
            case Operator.LIKE:
                return _like(lhs, right)
            case Operator.NOT_LIKE:
                return not_(_like(lhs, right))
        msg = f"unsupported operator {node.op!r}"
        raise QueryError(msg)

    async def _compile_operand(self, operand: Operand) -> _Compiled:
        if isinstance(operand, Literal):
            return _Compiled(is_value=True, value=operand.value)
        if operand.is_macro:
            return _Compiled(is_value=True, value=self._resolve_macro(operand))
        segments = operand.path.split(".")
        expression, field_type = await self._field_expression(Record, self.collection, segments, operand.path)
        is_system_date = len(segments) == 1 and segments[0] in ("created", "updated")
        return _Compiled(expression=expression, field_type=field_type, is_system_date=is_system_date)

    def _resolve_macro(self, identifier: Identifier) -> Any:
        parts = identifier.path[1:].split(".")
        if parts == ["now"]:
            return datetime.now(UTC)
        if parts[0] != "request" or len(parts) < 2:
            raise UnknownFieldError(identifier.path, self.collection.name)

        info = self.request_info
        if parts[1] == "method" and len(parts) == 2:
            return info.method
        if parts[1] in ("query", "data", "headers") and len(parts) == 3:
            return getattr(info, parts[1]).get(parts[2])
        if parts[1] == "auth" and len(parts) == 3:
            if info.auth_record is None:
                return None
            return info.auth_record.get(parts[2])
        raise UnknownFieldError(identifier.path, self.collection.name)

    async def _field_expression(
        self,
        alias: Any,
        collection: Collection,
        segments: list[str],
        path: str,
    ) -> tuple[ColumnElement[Any], FieldType]:
        name = segments[0]
        if len(segments) == 1:
            return _column_expression(alias, collection, name, path, self.collection.name)

        schema_field = collection.get_field(name)
        if schema_field is None or not schema_field.is_relation:
            raise UnknownFieldError(path, self.collection.name)
        if not schema_field.is_single_relation:
            raise MultiMatchFieldError(path)
        target = await self.find_collection(schema_field.related_collection)
        if target is None:
            raise UnknownFieldError(path, self.collection.name)

        related = aliased(Record)
        inner, field_type = await self._field_expression(related, target, segments[1:], path)
        subquery = (
            select(inner)
            .where(
                related.collection_id == target.id,
                related.id == alias.data[name].as_string(),
            )
            .limit(1)
            .scalar_subquery()
        )
        return subquery, field_type


def _column_expression(
    alias: Any,
    collection: Collection,
    name: str,
    path: str,
    root_name: str,
) -> tuple[ColumnElement[Any], FieldType]:
    if name == "id":
        return alias.id, FieldType.TEXT
    if name == "created":
        return alias.created, FieldType.DATE
    if name == "updated":
        return alias.updated, FieldType.DATE
    if name == "collectionId":
        return alias.collection_id, FieldType.TEXT
    if name == "collectionName":
        return literal(collection.name), FieldType.TEXT

    schema_field = collection.get_field(name)
    if schema_field is None:
        raise UnknownFieldError(path, root_name)
    element = alias.data[name]
    if schema_field.type in _NUMERIC_TYPES:
        return element.as_float(), schema_field.type
    if schema_field.type in _BOOL_TYPES:
        return element.as_boolean(), schema_field.type
    return element.as_string(), schema_field.type


def _null_safe(compiled: _Compiled) -> ColumnElement[Any]:
    """Treat missing values as the type's zero value, so ``field != ""`` skips NULLs."""
    if compiled.is_system_date:
        return compiled.expression
    if compiled.field_type in _NUMERIC_TYPES:
        return func.coalesce(compiled.expression, 0)
    if compiled.field_type in _BOOL_TYPES:
        return func.coalesce(compiled.expression, False)
    return func.coalesce(compiled.expression, "")


def _coerce_value(value: Any, other: _Compiled) -> _Compiled:
    """Convert a literal to a bound parameter matching the other operand's type."""
    if other.is_system_date:
        parsed = parse_date(value)
        if parsed is None:
            raise FilterSyntaxError(str(value), "invalid date value")
        return _Compiled(expression=literal(parsed, type_=other.expression.type), is_system_date=True)

    if other.field_type in _NUMERIC_TYPES:
        if value is None:
            value = 0
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise FilterSyntaxError(str(value), "invalid number value") from None
        return _Compiled(expression=literal(number), field_type=FieldType.NUMBER, value=number)

    if other.field_type in _BOOL_TYPES:
        flag = value in (True, 1, "true", "1")
        return _Compiled(expression=literal(flag), field_type=FieldType.BOOL, value=flag)

    if isinstance(value, datetime):
        value = format_date(value)
    elif value is None:
        value = ""
    elif isinstance(value, bool):
        value = "true" if value else "false"
    else:
        value = str(value)
    return _Compiled(expression=literal(value), field_type=FieldType.TEXT, value=value)


def _like(lhs: ColumnElement[Any], right: _Compiled) -> ColumnElement[bool]:
    if isinstance(right.value, str):
        pattern = right.value
        if "%" in pattern:
            return lhs.like(pattern)
        return lhs.contains(pattern, autoescape=True)
    return lhs.contains(_null_safe(right))


def _compare_values(left: Any, op: Operator, right: Any) -> bool:
    """Evaluate a comparison between two plain values (e.g. two macros)."""
    left = "" if left is None else left
    right = "" if right is None else right
    if op in (Operator.LIKE, Operator.NOT_LIKE):
        contains = str(right).replace("%", "") in str(left)
        return contains if op == Operator.LIKE else not contains
    if op == Operator.EQ:
        return left == right
    if op == Operator.NEQ:
        return left != right
    try:
        if op == Operator.GT:
            return left > right
        if op == Operator.GTE:
            return left >= right
        if op == Operator.LT:
            return left < right
        return left <= right
    except TypeError:
        return False
