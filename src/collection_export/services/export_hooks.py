"""Export lifecycle hooks wired explicitly into the record store flows.

``ExportHooks`` holds everything the three callbacks need, so hosts create
one instance and call it at the matching points of their create and
scheduling flows.
"""

from datetime import timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collection_export.core.background import BackgroundTaskRunner, InProcessTaskRunner
from collection_export.core.config import Settings
from collection_export.core.security import new_record_id
from collection_export.lib.exporter.errors import ExportErrorKind, ExportValidationError
from collection_export.lib.storage import ArtifactStorage, LocalArtifactStorage
from collection_export.lib.store.search import DEFAULT_PAGE_SIZE
from collection_export.models.record import Record
from collection_export.services import export_service, record_service
from collection_export.services.export_spec import ExportSpecification, fill_export, is_export_record, validate_and_fill


class ExportHooks:
    """Create, after-create and periodic-sweep callbacks for export records.

    Args:
        session_factory: Opens sessions for background generation.
        storage: Artifact storage receiving generated files.
        generate_in_background: Generate after creation in a background task
            instead of before the record is persisted.
        auto_delete: Sweep old exports whenever one is created.
        auto_delete_after: Retention window of the sweep.
        page_size: Records fetched per page during generation.
        sanitize_formulas: Quote-prefix cells that would run as spreadsheet formulas.
        task_runner: Runner for background generation; an in-process runner
            by default.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: ArtifactStorage,
        *,
        generate_in_background: bool = False,
        auto_delete: bool = True,
        auto_delete_after: timedelta = timedelta(hours=1),
        page_size: int = DEFAULT_PAGE_SIZE,
        sanitize_formulas: bool = False,
        task_runner: BackgroundTaskRunner | None = None,
    ) -> None:
        if page_size < 1:
            msg = f"page_size must be >= 1, got {page_size}"
            raise ValueError(msg)
        self.session_factory = session_factory
        self.storage = storage
        self.generate_in_background = generate_in_background
        self.auto_delete = auto_delete
        self.auto_delete_after = auto_delete_after
        self.page_size = page_size
        self.sanitize_formulas = sanitize_formulas
        self.task_runner = task_runner or InProcessTaskRunner()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        task_runner: BackgroundTaskRunner | None = None,
    ) -> "ExportHooks":
        """Build hooks from application settings with local artifact storage."""
        return cls(
            session_factory,
            LocalArtifactStorage(settings.export_storage_dir),
            generate_in_background=settings.export_generate_in_background,
            auto_delete=settings.export_auto_delete,
            auto_delete_after=timedelta(minutes=settings.export_auto_delete_minutes),
            page_size=settings.export_page_size,
            sanitize_formulas=settings.export_sanitize_formulas,
            task_runner=task_runner,
        )

    async def on_before_create(self, session: AsyncSession, record: Record) -> ExportSpecification:
        """Validate an export record before it is persisted.

        In synchronous mode the output is also generated and stored here, so
        the record is created with ``output`` already set.

        Raises:
            ExportValidationError: If the record is not a valid export.
            ExportStorageError: If the artifact cannot be written.
        """
        if not is_export_record(record):
            raise ExportValidationError(ExportErrorKind.NOT_AN_EXPORT, message="record is not an export")

        if not record.id:
            record.id = new_record_id()

        with logger.contextualize(export_id=record.id):
            try:
                spec = await validate_and_fill(session, record)
            except ExportValidationError as e:
                logger.info(f"Rejected export {record.id}: {e}")
                raise

            if not self.generate_in_background:
                spec.output = export_service.generate_output_filename(spec.format)
                await export_service.generate_artifact(
                    session,
                    spec,
                    self.storage,
                    spec.output,
                    page_size=self.page_size,
                    sanitize_formulas=self.sanitize_formulas,
                )
        return spec

    def on_after_create(self, spec: ExportSpecification) -> str | None:
        """Submit background generation for a persisted export.

        Returns:
            The background job id, or None in synchronous mode.
        """
        if not self.generate_in_background:
            return None
        job_id = self.task_runner.submit_task(self._generate(spec.record.collection_id, spec.id))
        logger.debug(f"Submitted background generation of export {spec.id} as job {job_id}")
        return job_id

    async def on_periodic_sweep(self, session: AsyncSession, retention: timedelta | None = None) -> int:
        """Delete exports older than ``retention`` (the configured window by default)."""
        window = self.auto_delete_after if retention is None else retention
        return await export_service.sweep_exports(session, self.storage, window)

    async def _generate(self, collection_id: str, record_id: str) -> None:
        # Runs detached from the creating session; the record is re-read so
        # generation sees the committed state
        with logger.contextualize(export_id=record_id):
            try:
                async with self.session_factory() as session:
                    record = await record_service.find_record_by_id(session, collection_id, record_id)
                    spec = await fill_export(session, record)
                    filename = export_service.generate_output_filename(spec.format)
                    await export_service.generate_artifact(
                        session,
                        spec,
                        self.storage,
                        filename,
                        page_size=self.page_size,
                        sanitize_formulas=self.sanitize_formulas,
                    )
                    spec.output = filename
                    await session.commit()
            except Exception:
                logger.exception(f"Background export {record_id} failed")
                raise
            logger.info(f"Background export {record_id} ready: {filename}")
