"""Background migration runs for the API process.

At most one migration runs at a time, as an asyncio task inside the FastAPI
process. Its latest progress snapshot lives in memory and is polled by the
status route; nothing about the run is persisted except the resume cursor.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from s3migrate.config import DryRunMode, Settings
from s3migrate.errors import MigrationError, safe_error_message
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.models import CheckReport, CleanupResult, MigrationResult, MigrationState, RunPhase
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.orchestrator import MigrationOrchestrator
from s3migrate.services.preflight import PreflightChecker
from s3migrate.services.preview_cleanup import PreviewCleaner
from s3migrate.services.storage_remapper import StorageRemapper

logger = logging.getLogger(__name__)


class RunAlreadyActiveError(MigrationError):
    """A migration is already running in this process."""
    pass


class MigrationService:
    """Entry point used by the API routes and the CLI."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        object_store_factory: Optional[Callable[[Settings], Any]] = None,
    ):
        self.settings = settings
        self.engine = engine
        self._object_store_factory = object_store_factory or ObjectStore
        self._task: Optional[asyncio.Task] = None
        self._orchestrator: Optional[MigrationOrchestrator] = None
        self._state = MigrationState()
        self._result: Optional[MigrationResult] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> MigrationState:
        return self._state

    @property
    def last_result(self) -> Optional[MigrationResult]:
        return self._result

    async def run_checks(self) -> CheckReport:
        """Preflight only. Connectivity problems come back as error entries."""
        catalog = CatalogStore(self.engine)
        try:
            object_store = self._object_store_factory(self.settings)
            checker = PreflightChecker(catalog, object_store, StorageRemapper(catalog, self.settings), self.settings)
            return await checker.run()
        finally:
            await catalog.close()

    def start(self, dry_run: Optional[DryRunMode] = None, resume: bool = False) -> MigrationState:
        """Validate config and launch the run in the background."""
        if self.running:
            raise RunAlreadyActiveError("A migration is already running")
        self.settings.validate_for_migration()

        catalog = CatalogStore(self.engine)
        self._orchestrator = MigrationOrchestrator(
            self.settings,
            catalog,
            self._object_store_factory(self.settings),
            dry_run=dry_run,
        )
        self._result = None
        self._state = MigrationState(status="running", phase=RunPhase.PREFLIGHT)
        self._task = asyncio.create_task(self._run(self._orchestrator, catalog, resume))
        logger.info(f"Migration started (dry run: {self._orchestrator.dry_run.value}, resume: {resume})")
        return self._state

    async def _record_progress(self, state: MigrationState) -> None:
        self._state = state

    async def _run(self, orchestrator: MigrationOrchestrator, catalog: CatalogStore, resume: bool) -> None:
        try:
            self._result = await orchestrator.run(self._record_progress, resume=resume)
        except Exception as e:
            logger.exception(f"Migration run crashed: {safe_error_message(e)}")
            self._state = replace(
                self._state, status="failed", phase=RunPhase.ABORTED, error=safe_error_message(e)
            )
        finally:
            await catalog.close()
            self._orchestrator = None

    async def wait(self) -> Optional[MigrationResult]:
        """Wait for the active run (if any) and return its result."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self._result

    def stop(self) -> bool:
        """Request a cooperative stop. Returns False if nothing is running."""
        if not self.running or self._orchestrator is None:
            return False
        self._orchestrator.request_stop()
        return True

    def status(self) -> dict:
        return {
            "running": self.running,
            "progress": self._state.to_dict(),
            "result": self._result.to_dict() if self._result else None,
        }

    async def cleanup_previews(self, max_age_days: Optional[int] = None, max_count: Optional[int] = None) -> CleanupResult:
        if self.running:
            raise RunAlreadyActiveError("Cannot clean up previews while a migration is running")
        max_age = self.settings.PREVIEW_MAX_AGE if max_age_days is None else max_age_days
        count = self.settings.PREVIEW_MAX_COUNT if max_count is None else max_count

        catalog = CatalogStore(self.engine)
        try:
            cleaner = PreviewCleaner(catalog, self._object_store_factory(self.settings), self.settings)
            return await cleaner.cleanup(max_age, count)
        finally:
            await catalog.close()

    async def shutdown(self) -> None:
        """Stop an active run and wait for it to commit what it has."""
        if self.stop():
            await self.wait()


_service: Optional[MigrationService] = None


def get_migration_service() -> MigrationService:
    """FastAPI dependency returning the process-wide service."""
    global _service
    if _service is None:
        from s3migrate.config import settings
        from s3migrate.database import engine
        _service = MigrationService(settings, engine)
    return _service
