"""Export CLI commands: create, validate and sweep export records."""

import asyncio
import json
from datetime import timedelta

import typer
from pydantic import ValidationError

from collection_export.lib.exporter.errors import ExportError, ExportValidationError
from collection_export.schemas.export import OUTPUT_FIELD, ExportCreateRequest, HeaderItem

export_app = typer.Typer()


def parse_header_option(value: str) -> HeaderItem:
    """Parse a ``field:label[:timezone]`` header option.

    Raises:
        typer.BadParameter: If the field or the label is missing.
    """
    parts = value.split(":", 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        msg = f"expected field:label[:timezone], got {value!r}"
        raise typer.BadParameter(msg)
    timezone = parts[2] if len(parts) == 3 and parts[2] else None
    return HeaderItem(field_name=parts[0], header=parts[1], timezone=timezone)


def _build_request(
    collection: str,
    headers: list[str],
    headers_json: str | None,
    filter_expr: str,
    sort_expr: str,
    output_format: str,
    owner_id: str,
    owner_collection: str,
) -> ExportCreateRequest:
    items: list[HeaderItem | dict] = []
    if headers_json:
        try:
            items.extend(json.loads(headers_json))
        except json.JSONDecodeError as e:
            msg = f"--headers-json is not valid JSON: {e}"
            raise typer.BadParameter(msg) from None
    items.extend(parse_header_option(value) for value in headers)
    try:
        return ExportCreateRequest(
            export_collection_name=collection,
            headers=items,
            filter=filter_expr,
            sort=sort_expr,
            format=output_format,
            owner_id=owner_id,
            owner_collection_name=owner_collection,
        )
    except ValidationError as e:
        typer.echo("Invalid export request:", err=True)
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            typer.echo(f"  {location}: {error['msg']}", err=True)
        raise typer.Exit(code=1) from None


def _fail(error: ExportError) -> typer.Exit:
    typer.echo(f"Export failed ({error.kind}): {error.message}", err=True)
    if isinstance(error, ExportValidationError):
        for field_name, message in error.fields.items():
            typer.echo(f"  {field_name}: {message}", err=True)
    return typer.Exit(code=1)


_COLLECTION_OPTION = typer.Option(..., "--collection", "-c", help="Name or id of the collection to export")
_HEADER_OPTION = typer.Option([], "--header", "-H", help="Column as field:label[:timezone] (repeatable)")
_HEADERS_JSON_OPTION = typer.Option(None, "--headers-json", help="JSON header list, e.g. with valueMap entries")
_FILTER_OPTION = typer.Option("", "--filter", help="Filter expression")
_SORT_OPTION = typer.Option("", "--sort", help="Sort expression, e.g. -created,title")
_FORMAT_OPTION = typer.Option("csv", "--format", help="Output format (csv, xlsx)")
_OWNER_ID_OPTION = typer.Option("", "--owner-id", help="Auth record or admin id the export runs as")
_OWNER_COLLECTION_OPTION = typer.Option("", "--owner-collection", help="Auth collection of --owner-id")


@export_app.command("create")
def export_create(
    collection: str = _COLLECTION_OPTION,
    header: list[str] = _HEADER_OPTION,
    headers_json: str | None = _HEADERS_JSON_OPTION,
    filter_expr: str = _FILTER_OPTION,
    sort_expr: str = _SORT_OPTION,
    output_format: str = _FORMAT_OPTION,
    owner_id: str = _OWNER_ID_OPTION,
    owner_collection: str = _OWNER_COLLECTION_OPTION,
) -> None:
    """Create an export record and generate its output file."""
    request = _build_request(
        collection, header, headers_json, filter_expr, sort_expr, output_format, owner_id, owner_collection
    )
    asyncio.run(_export_create(request))


async def _export_create(request: ExportCreateRequest) -> None:
    from collection_export.core.config import get_settings
    from collection_export.core.database import create_tables, dispose_engine, get_session_factory, init_engine
    from collection_export.services.export_hooks import ExportHooks
    from collection_export.services.export_service import artifact_key, create_export, get_export

    settings = get_settings()
    init_engine(settings.database_url)
    try:
        await create_tables()
        factory = get_session_factory()
        hooks = ExportHooks.from_settings(settings, factory)
        async with factory() as session:
            try:
                spec, job_id = await create_export(session, hooks, request)
            except ExportError as e:
                raise _fail(e) from None

        typer.echo(f"Export created: {spec.id}")
        typer.echo(f"Format: {spec.format}")

        if job_id is not None:
            typer.echo("Generating in background...")
            status = await hooks.task_runner.wait(job_id)
            typer.echo(f"Background job {job_id}: {status}")
            async with factory() as session:
                record = await get_export(session, spec.id)
                output = record.get_string(OUTPUT_FIELD)
        else:
            record = spec.record
            output = spec.output

        if output:
            path = hooks.storage.path_for(artifact_key(record, output))
            typer.echo(f"Output: {output}")
            typer.echo(f"File path: {path}")
        else:
            typer.echo("No output generated", err=True)
            raise typer.Exit(code=1)
    finally:
        await dispose_engine()


@export_app.command("validate")
def export_validate(
    collection: str = _COLLECTION_OPTION,
    header: list[str] = _HEADER_OPTION,
    headers_json: str | None = _HEADERS_JSON_OPTION,
    filter_expr: str = _FILTER_OPTION,
    sort_expr: str = _SORT_OPTION,
    output_format: str = _FORMAT_OPTION,
    owner_id: str = _OWNER_ID_OPTION,
    owner_collection: str = _OWNER_COLLECTION_OPTION,
) -> None:
    """Validate an export without creating it."""
    request = _build_request(
        collection, header, headers_json, filter_expr, sort_expr, output_format, owner_id, owner_collection
    )
    asyncio.run(_export_validate(request))


async def _export_validate(request: ExportCreateRequest) -> None:
    from collection_export.core.config import get_settings
    from collection_export.core.database import create_tables, dispose_engine, get_session_factory, init_engine
    from collection_export.services.export_spec import validate_and_fill
    from collection_export.services.record_service import ensure_exports_collection, new_record

    settings = get_settings()
    init_engine(settings.database_url)
    try:
        await create_tables()
        async with get_session_factory()() as session:
            exports = await ensure_exports_collection(session)
            record = new_record(exports, request.to_record_data())
            try:
                spec = await validate_and_fill(session, record)
            except ExportError as e:
                raise _fail(e) from None
        typer.echo(f"Export is valid: {spec.export_collection.name} as {spec.principal_kind}")
    finally:
        await dispose_engine()


@export_app.command("sweep")
def export_sweep(
    minutes: int | None = typer.Option(None, "--minutes", min=1, help="Retention window (default from settings)"),
) -> None:
    """Delete export records and artifacts older than the retention window."""
    asyncio.run(_export_sweep(minutes))


async def _export_sweep(minutes: int | None) -> None:
    from collection_export.core.config import get_settings
    from collection_export.core.database import create_tables, dispose_engine, get_session_factory, init_engine
    from collection_export.services.export_hooks import ExportHooks

    settings = get_settings()
    init_engine(settings.database_url)
    try:
        await create_tables()
        factory = get_session_factory()
        hooks = ExportHooks.from_settings(settings, factory)
        retention = timedelta(minutes=minutes) if minutes else hooks.auto_delete_after
        async with factory() as session:
            deleted = await hooks.on_periodic_sweep(session, retention)
        typer.echo(f"Deleted {deleted} exports")
    finally:
        await dispose_engine()
