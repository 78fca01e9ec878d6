"""Shared test fixtures: async database, sessions, storage and a sample record store.

The sample store has an auth collection ``users`` (Ann and Bob) and a base
collection ``messages`` whose ``author`` relation points at ``users``.
Messages are listable and viewable only by their author.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from collection_export.core.config import Settings
from collection_export.lib.storage import LocalArtifactStorage
from collection_export.lib.store.schema import CollectionType, FieldType, SchemaField
from collection_export.models import Admin, Base, Collection, Record
from collection_export.services import record_service

AUTHOR_RULE = "author = @request.auth.id"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url="sqlite+aiosqlite:///:memory:",
        export_storage_dir=str(tmp_path / "exports"),
        export_page_size=2,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path: Path) -> LocalArtifactStorage:
    return LocalArtifactStorage(tmp_path / "exports")


@pytest.fixture
async def admin(async_session: AsyncSession) -> Admin:
    """A privileged admin."""
    return await record_service.create_admin(async_session, email="admin@example.com")


@pytest.fixture
async def users(async_session: AsyncSession) -> Collection:
    """Auth collection; users may only list themselves, anyone may view."""
    return await record_service.create_collection(
        async_session,
        name="users",
        collection_type=CollectionType.AUTH,
        schema=[
            SchemaField("email", FieldType.EMAIL, required=True),
            SchemaField("name", FieldType.TEXT),
        ],
        list_rule="id = @request.auth.id",
        view_rule="",
    )


@pytest.fixture
async def messages(async_session: AsyncSession, users: Collection) -> Collection:
    """Messages with a single ``author`` relation and a multi ``readers`` relation."""
    return await record_service.create_collection(
        async_session,
        name="messages",
        schema=[
            SchemaField("message", FieldType.TEXT, required=True),
            SchemaField("author", FieldType.RELATION, options={"collectionId": users.id, "maxSelect": 1}),
            SchemaField("readers", FieldType.RELATION, options={"collectionId": users.id, "maxSelect": None}),
            SchemaField("score", FieldType.NUMBER),
            SchemaField("published", FieldType.BOOL),
            SchemaField("status", FieldType.SELECT, options={"maxSelect": 1, "values": ["a", "b"]}),
        ],
        list_rule=AUTHOR_RULE,
        view_rule=AUTHOR_RULE,
    )


@pytest.fixture
async def exports(async_session: AsyncSession) -> Collection:
    return await record_service.ensure_exports_collection(async_session)


@pytest.fixture
async def ann(async_session: AsyncSession, users: Collection) -> Record:
    return await record_service.create_record(async_session, users, {"email": "ann@example.com", "name": "Ann"})


@pytest.fixture
async def bob(async_session: AsyncSession, users: Collection) -> Record:
    return await record_service.create_record(async_session, users, {"email": "bob@example.com", "name": "Bob"})


@pytest.fixture
async def sample_messages(
    async_session: AsyncSession,
    messages: Collection,
    ann: Record,
    bob: Record,
) -> list[Record]:
    """Two messages in creation order: Ann's ``hello`` and Bob's ``world``."""
    hello = await record_service.create_record(
        async_session,
        messages,
        {"message": "hello", "author": ann.id, "readers": [bob.id], "score": 3, "published": True, "status": "a"},
        created=datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
    )
    world = await record_service.create_record(
        async_session,
        messages,
        {"message": "world", "author": bob.id, "readers": [], "score": 5, "published": False, "status": "b"},
        created=datetime(2024, 1, 2, 12, 30, tzinfo=UTC),
    )
    return [hello, world]


@pytest.fixture
def make_export(exports: Collection) -> Callable[..., Record]:
    """Build an unsaved export record; keyword arguments override field values."""

    def _make(**fields: Any) -> Record:
        data: dict[str, Any] = {
            "exportCollectionName": "messages",
            "headers": [{"fieldName": "message", "header": "message"}],
            "filter": "",
            "sort": "",
            "format": "csv",
            "output": "",
            "ownerId": "",
            "ownerCollectionName": "",
        }
        data.update(fields)
        return record_service.new_record(exports, data)

    return _make
