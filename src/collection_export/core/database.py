"""Async database engine and session management.

Provides async engine creation, session factory, and lifecycle helpers
using SQLAlchemy 2.x.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the current async engine.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _engine is None:
        msg = "Database engine not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the current session factory.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _session_factory is None:
        msg = "Session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _session_factory


def init_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create and store the async engine and session factory.

    The record store runs on SQLite through aiosqlite. An in-memory URL
    gets a single shared connection, so tables created by
    ``create_tables()`` stay visible to every session.

    Args:
        database_url: ``sqlite+aiosqlite`` connection string.
        **kwargs: Additional arguments passed to create_async_engine.

    Returns:
        The created async engine.

    Raises:
        ValueError: If the URL is not an aiosqlite URL.
    """
    global _engine, _session_factory  # noqa: PLW0603
    if not database_url.startswith("sqlite+aiosqlite:"):
        msg = f"Unsupported database URL {database_url!r}; expected sqlite+aiosqlite"
        raise ValueError(msg)
    if ":memory:" in database_url or database_url == "sqlite+aiosqlite://":
        kwargs.setdefault("poolclass", StaticPool)
    _engine = create_async_engine(database_url, **kwargs)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def create_tables() -> None:
    """Create all ORM tables on the current engine."""
    from collection_export.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose of the async engine and release connections."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
