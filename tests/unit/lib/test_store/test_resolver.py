"""Tests for schema-aware field resolution and filter/sort compilation."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collection_export.lib.store.errors import FilterSyntaxError, MultiMatchFieldError, UnknownFieldError
from collection_export.lib.store.filter import parse_sort
from collection_export.lib.store.resolver import FieldResolver, RequestInfo
from collection_export.lib.store.schema import FieldType
from collection_export.models import Admin, Collection, Record


async def _matching(session: AsyncSession, resolver: FieldResolver, expression: str) -> list[str]:
    condition = await resolver.build_condition(expression)
    result = await session.execute(
        select(Record).where(Record.collection_id == resolver.collection.id, condition).order_by(Record.created)
    )
    return [record.data["message"] for record in result.scalars().all()]


class TestRequestInfo:
    """Tests for RequestInfo."""

    def test_defaults(self) -> None:
        info = RequestInfo()
        assert info.method == "GET"
        assert info.query == {}
        assert info.auth_record is None
        assert info.is_admin is False

    def test_admin(self) -> None:
        assert RequestInfo(admin=Admin(email="a@example.com")).is_admin is True


class TestResolve:
    """Tests for FieldResolver.resolve."""

    @pytest.mark.asyncio
    async def test_plain_and_system_fields(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())

        message = await resolver.resolve("message")
        assert message.field_type == FieldType.TEXT
        assert message.collection is messages
        assert message.multi_match is False

        created = await resolver.resolve("created")
        assert created.field_type == FieldType.DATE
        assert created.schema_field is None

    @pytest.mark.asyncio
    async def test_single_relation_path(
        self, async_session: AsyncSession, messages: Collection, users: Collection
    ) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())

        resolved = await resolver.resolve("author.email")

        assert resolved.field_type == FieldType.EMAIL
        assert resolved.collection.id == users.id
        assert resolved.multi_match is False
        assert (await resolver.resolve("author.created")).field_type == FieldType.DATE

    @pytest.mark.asyncio
    async def test_multi_relation_path_is_flagged(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        assert (await resolver.resolve("readers.email")).multi_match is True

    @pytest.mark.asyncio
    async def test_relation_field_as_leaf(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        assert (await resolver.resolve("author")).field_type == FieldType.RELATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["", "nope", "message.email", "author.nope", "@request.auth.id"])
    async def test_unknown_paths(self, async_session: AsyncSession, messages: Collection, path: str) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(UnknownFieldError):
            await resolver.resolve(path)


class TestBuildCondition:
    """Tests for FieldResolver.build_condition against stored records."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ('message = "hello"', ["hello"]),
            ('message != "hello"', ["world"]),
            ('message ~ "orl"', ["world"]),
            ('message !~ "orl"', ["hello"]),
            ("score > 3", ["world"]),
            ("score <= 3", ["hello"]),
            ("published = true", ["hello"]),
            ('status = "a" || score = 5', ["hello", "world"]),
            ('status = "a" && score = 5', []),
            ('author.name = "Bob"', ["world"]),
            ('author.email ~ "ann"', ["hello"]),
            ('created >= "2024-01-02 00:00:00"', ["world"]),
            ("created < @now", ["hello", "world"]),
            ('collectionName = "messages"', ["hello", "world"]),
        ],
    )
    async def test_filters(
        self,
        async_session: AsyncSession,
        messages: Collection,
        sample_messages: list[Record],
        expression: str,
        expected: list[str],
    ) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        assert await _matching(async_session, resolver, expression) == expected

    @pytest.mark.asyncio
    async def test_auth_macros(
        self, async_session: AsyncSession, messages: Collection, sample_messages: list[Record], ann: Record
    ) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo(auth_record=ann))

        assert await _matching(async_session, resolver, "author = @request.auth.id") == ["hello"]
        assert await _matching(async_session, resolver, "author.email = @request.auth.email") == ["hello"]
        assert await _matching(async_session, resolver, '@request.method = "GET"') == ["hello", "world"]

    @pytest.mark.asyncio
    async def test_auth_macro_without_auth_record(
        self, async_session: AsyncSession, messages: Collection, sample_messages: list[Record]
    ) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        assert await _matching(async_session, resolver, "author = @request.auth.id") == []

    @pytest.mark.asyncio
    async def test_multi_relation_filter_raises(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(MultiMatchFieldError):
            await resolver.build_condition('readers.email = "bob@example.com"')

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expression", ["nope = 1", "@request.nope = 1", "author.nope = 1"])
    async def test_unknown_fields_raise(self, async_session: AsyncSession, messages: Collection, expression: str) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(UnknownFieldError):
            await resolver.build_condition(expression)

    @pytest.mark.asyncio
    async def test_invalid_values_raise(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(FilterSyntaxError):
            await resolver.build_condition('created >= "not a date"')
        with pytest.raises(FilterSyntaxError):
            await resolver.build_condition('score > "many"')


class TestBuildOrderBy:
    """Tests for FieldResolver.build_order_by."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("sort", "expected"),
        [
            ("-score", ["world", "hello"]),
            ("score", ["hello", "world"]),
            ("-author.name", ["world", "hello"]),
            ("-created", ["world", "hello"]),
        ],
    )
    async def test_sorting(
        self,
        async_session: AsyncSession,
        messages: Collection,
        sample_messages: list[Record],
        sort: str,
        expected: list[str],
    ) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        order_by = await resolver.build_order_by(parse_sort(sort))

        result = await async_session.execute(
            select(Record).where(Record.collection_id == messages.id).order_by(*order_by)
        )

        assert [record.data["message"] for record in result.scalars().all()] == expected

    @pytest.mark.asyncio
    async def test_macro_sort_raises(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(FilterSyntaxError):
            await resolver.build_order_by(parse_sort("@now"))

    @pytest.mark.asyncio
    async def test_multi_relation_sort_raises(self, async_session: AsyncSession, messages: Collection) -> None:
        resolver = FieldResolver(async_session, messages, RequestInfo())
        with pytest.raises(MultiMatchFieldError):
            await resolver.build_order_by(parse_sort("readers.name"))
