"""Record store setup CLI commands."""

import asyncio
import json
from pathlib import Path

import typer
from loguru import logger

db_app = typer.Typer()


@db_app.command("init")
def db_init() -> None:
    """Create the tables and the exports collection."""
    asyncio.run(_db_init())


async def _db_init() -> None:
    from collection_export.core.config import get_settings
    from collection_export.core.database import create_tables, dispose_engine, get_session_factory, init_engine
    from collection_export.services.record_service import ensure_exports_collection

    settings = get_settings()
    init_engine(settings.database_url)
    try:
        await create_tables()
        async with get_session_factory()() as session:
            exports = await ensure_exports_collection(session)
        logger.info("Database initialized")
        typer.echo(f"Database ready, exports collection: {exports.id}")
    finally:
        await dispose_engine()


@db_app.command("import")
def db_import(
    file: Path = typer.Argument(..., help="JSON file with admins, collections and records", exists=True),
) -> None:
    """Load admins, collections and records from a JSON file."""
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        typer.echo(f"Invalid JSON in {file}: {e}", err=True)
        raise typer.Exit(code=1) from None
    asyncio.run(_db_import(payload))


async def _db_import(payload: dict) -> None:
    from collection_export.core.config import get_settings
    from collection_export.core.database import create_tables, dispose_engine, get_session_factory, init_engine
    from collection_export.services.record_service import import_fixtures

    settings = get_settings()
    init_engine(settings.database_url)
    try:
        await create_tables()
        async with get_session_factory()() as session:
            counts = await import_fixtures(session, payload)
        typer.echo("Import complete:")
        typer.echo(f"  Admins:       {counts['admins']}")
        typer.echo(f"  Collections:  {counts['collections']}")
        typer.echo(f"  Records:      {counts['records']}")
    finally:
        await dispose_engine()
