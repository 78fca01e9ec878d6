"""Export service — orchestrates export generation, storage and retention."""

import contextlib
import tempfile
from datetime import timedelta
from typing import TYPE_CHECKING, BinaryIO

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from collection_export.core.security import random_string
from collection_export.lib.exporter import FILE_EXTENSIONS, create_writer
from collection_export.lib.exporter.errors import ExportStorageError
from collection_export.lib.exporter.paths import expands_from_split_map, header_split_map, resolve_row
from collection_export.lib.storage import ArtifactStorage
from collection_export.lib.store import search
from collection_export.lib.store.errors import RecordNotFoundError
from collection_export.lib.store.expand import ExpansionMap, expand_records
from collection_export.models.base import utcnow
from collection_export.models.record import Record
from collection_export.schemas.export import EXPORTS_COLLECTION_NAME, OUTPUT_FIELD, ExportCreateRequest
from collection_export.services import record_service
from collection_export.services.export_spec import ExportSpecification

if TYPE_CHECKING:
    from collection_export.services.export_hooks import ExportHooks

OUTPUT_FILENAME_LENGTH = 20

# Generated output stays in memory up to this size before spilling to disk
_SPOOL_MAX_SIZE = 8 * 1024 * 1024


def generate_output_filename(output_format: str) -> str:
    """Return a random artifact filename with the format's extension."""
    return random_string(OUTPUT_FILENAME_LENGTH) + FILE_EXTENSIONS[output_format]


def artifact_key(record: Record, filename: str) -> str:
    """Storage key of an export record's artifact."""
    return f"{record.collection_id}/{record.id}/{filename}"


async def generate_export_output(
    session: AsyncSession,
    spec: ExportSpecification,
    stream: BinaryIO,
    *,
    page_size: int = search.DEFAULT_PAGE_SIZE,
    sanitize_formulas: bool = False,
) -> int:
    """Write an export's header row and data rows to a binary stream.

    Records are fetched page by page as the export's principal; each page is
    expanded along the relation paths the headers need, then written before
    the next page is fetched.

    Args:
        session: Database session.
        spec: Filled export specification.
        stream: Binary stream receiving the output.
        page_size: Records fetched per page.
        sanitize_formulas: Quote-prefix cells that would run as spreadsheet formulas.

    Returns:
        The number of data rows written.

    Raises:
        QueryError: If the filter, sort or access rule cannot be compiled.
        ValueError: If the format is not supported.
    """
    writer = create_writer(spec.format, stream, sanitize_formulas=sanitize_formulas)
    split_map = header_split_map(spec.headers)
    expand_paths = expands_from_split_map(split_map)
    resolver = spec.field_resolver(session)

    writer.write_header([header.header for header in spec.headers])

    rows = 0
    async for records in search.iter_export_pages(
        session,
        resolver,
        filter_expr=spec.filter,
        sort_expr=spec.sort,
        page_size=page_size,
    ):
        if expand_paths and records:
            expansions = await expand_records(session, resolver, records, expand_paths)
        else:
            expansions = ExpansionMap()
        for record in records:
            writer.write_row(resolve_row(record, spec.headers, split_map, expansions))
            rows += 1

    writer.finalize()
    logger.info(f"Generated export {spec.id} ({spec.format}): {rows} rows from {spec.export_collection.name}")
    return rows


async def generate_artifact(
    session: AsyncSession,
    spec: ExportSpecification,
    storage: ArtifactStorage,
    filename: str,
    *,
    page_size: int = search.DEFAULT_PAGE_SIZE,
    sanitize_formulas: bool = False,
) -> str:
    """Generate an export's output and store it as the record's artifact.

    Returns:
        The storage key of the saved artifact.

    Raises:
        ExportStorageError: If the artifact cannot be written.
    """
    key = artifact_key(spec.record, filename)
    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as buffer:
        await generate_export_output(
            session,
            spec,
            buffer,
            page_size=page_size,
            sanitize_formulas=sanitize_formulas,
        )
        buffer.seek(0)
        try:
            size = await storage.save(key, buffer)
        except (OSError, ValueError) as e:
            raise ExportStorageError(key, str(e)) from e

    logger.info(f"Stored export artifact {key} ({size} bytes)")
    return key


async def sweep_exports(session: AsyncSession, storage: ArtifactStorage, retention: timedelta) -> int:
    """Delete export records created at or before ``now - retention``.

    Records are deleted one at a time together with their artifacts. An
    artifact that is already gone is ignored; any other error stops the sweep,
    and records deleted before it stay deleted.

    Returns:
        The number of deleted export records.
    """
    try:
        exports = await record_service.find_collection_by_name_or_id(session, EXPORTS_COLLECTION_NAME)
    except RecordNotFoundError:
        return 0

    cutoff = utcnow() - retention
    records = await record_service.find_records_created_before(session, exports, cutoff)

    deleted = 0
    for record in records:
        output = record.get_string(OUTPUT_FIELD)
        await record_service.delete_record(session, record)
        if output:
            with contextlib.suppress(FileNotFoundError):
                await storage.delete(artifact_key(record, output))
        deleted += 1

    if deleted:
        logger.info(f"Swept {deleted} export records created before {cutoff.isoformat()}")
    return deleted


async def create_export(
    session: AsyncSession,
    hooks: "ExportHooks",
    request: ExportCreateRequest,
) -> tuple[ExportSpecification, str | None]:
    """Create an export record and run its lifecycle hooks.

    Args:
        session: Database session.
        hooks: Export lifecycle hooks.
        request: The export to create.

    Returns:
        The filled specification and the background job id (None when the
        output was generated synchronously).

    Raises:
        ExportValidationError: If the export is invalid; nothing is persisted.
        ExportStorageError: If the artifact cannot be written.
    """
    exports = await record_service.ensure_exports_collection(session)
    record = record_service.new_record(exports, request.to_record_data())

    spec = await hooks.on_before_create(session, record)

    session.add(record)
    await session.commit()
    await session.refresh(record)
    logger.info(f"Created export {record.id} of {request.export_collection_name} ({request.format})")

    if hooks.auto_delete:
        await hooks.on_periodic_sweep(session, hooks.auto_delete_after)

    job_id = hooks.on_after_create(spec)
    return spec, job_id


async def get_export(session: AsyncSession, export_id: str) -> Record:
    """Get an export record by id.

    Raises:
        RecordNotFoundError: If the export does not exist.
    """
    return await record_service.find_record_by_id(session, EXPORTS_COLLECTION_NAME, export_id)
