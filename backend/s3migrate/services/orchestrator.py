"""Migration orchestrator - the state machine driving a whole run.

Phases:

    idle -> preflight -> backing_up -> maintenance_on -> migrating
         -> remapping -> maintenance_off -> complete

``aborted`` is reachable from backing_up..remapping on a fatal error or a
stop request. Dry runs skip backup, maintenance and remapping and never write
to the catalog or the object store.

Consistency rules:
- A file is uploaded before its catalog row is repointed.
- Catalog writes are committed in blocks of COMMIT_INTERVAL records; a fatal
  error rolls back only the open block.
- The resume cursor only moves past a file id once the block containing it
  has been committed.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from s3migrate.config import DryRunMode, Settings
from s3migrate.errors import safe_error_message
from s3migrate.services.backup import DatabaseBackup
from s3migrate.services.batch_cursor import BatchCursor
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.cursor_store import CursorStore
from s3migrate.services.file_migrator import FileMigrator
from s3migrate.services.maintenance import ConfigFileMaintenance, MaintenanceStore
from s3migrate.services.models import (
    FileRecord,
    MigrationCursor,
    MigrationOutcome,
    MigrationResult,
    MigrationState,
    RunPhase,
)
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.parallel_engine import run_parallel
from s3migrate.services.preflight import PreflightChecker
from s3migrate.services.storage_remapper import StorageRemapper

logger = logging.getLogger(__name__)

ProgressSink = Callable[[MigrationState], Awaitable[None]]

STOPPED_MESSAGE = "Migration stopped by request"


class MigrationOrchestrator:
    """Runs preflight, backup, maintenance bracketing, the batch loop and the final remap."""

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogStore,
        object_store: ObjectStore,
        *,
        dry_run: Optional[DryRunMode] = None,
        backup: Optional[DatabaseBackup] = None,
        maintenance: Optional[MaintenanceStore] = None,
        cursor_store: Optional[CursorStore] = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.dry_run = dry_run if dry_run is not None else settings.DRY_RUN
        self.batch_size = settings.BATCH_SIZE
        self.commit_interval = settings.COMMIT_INTERVAL
        self.workers = settings.UPLOAD_WORKERS

        self.remapper = StorageRemapper(catalog, settings)
        self.batch_cursor = BatchCursor(catalog)
        self.migrator = FileMigrator(object_store, self.remapper, settings, self.dry_run)
        self.preflight = PreflightChecker(catalog, object_store, self.remapper, settings)
        self.backup = backup or DatabaseBackup(settings.DATABASE_URL, settings.BACKUP_DIRECTORY)
        self.maintenance = maintenance or ConfigFileMaintenance(settings.NEXTCLOUD_DIR)
        self.cursor_store = cursor_store or CursorStore(settings.BACKUP_DIRECTORY)

        self.phase = RunPhase.IDLE
        self._stop_requested = asyncio.Event()
        self._emit_lock = asyncio.Lock()
        self._progress: Optional[ProgressSink] = None

        # Last committed view of the run; what an abort reports
        self._committed = MigrationState()
        self._cursor: Optional[MigrationCursor] = None

        logger.info(f"Initializing migration orchestrator (dry run: {self.dry_run.value})")

    # ── Control ──────────────────────────────────────────────────

    def request_stop(self) -> None:
        """Ask the run to stop before the next record. Completed work is committed."""
        logger.info("Stop requested")
        self._stop_requested.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    async def _emit(self, state: MigrationState) -> None:
        if self._progress is None:
            return
        async with self._emit_lock:
            try:
                await self._progress(state)
            except Exception as e:
                logger.warning(f"Progress sink failed: {safe_error_message(e)}")

    async def _enter(self, phase: RunPhase, state: MigrationState) -> MigrationState:
        self.phase = phase
        logger.info(f"Migration phase: {phase.value}")
        state = replace(state, phase=phase)
        await self._emit(state)
        return state

    # ── Run ──────────────────────────────────────────────────────

    async def run(self, progress: Optional[ProgressSink] = None, *, resume: bool = False) -> MigrationResult:
        """Execute a full migration. Never raises for migration failures; see the result."""
        self._progress = progress
        dry = self.dry_run.enabled
        state = MigrationState(status="running")
        backup_file: Optional[str] = None
        maintenance_on = False
        error: Optional[str] = None

        state = await self._enter(RunPhase.PREFLIGHT, state)
        report = await self.preflight.run()
        await self.catalog.rollback()
        if not report.success:
            failed = ", ".join(c.name for c in report.checks if c.status == "error")
            error = f"Pre-migration checks failed: {failed}"
            logger.error(error)
            state = replace(state, phase=RunPhase.ABORTED, status="failed", error=error)
            self.phase = RunPhase.ABORTED
            await self._emit(state)
            return self._result(state, backup_file, error=error, checks=report)

        try:
            if not dry:
                state = await self._enter(RunPhase.BACKING_UP, state)
                if self.settings.BACKUP_ENABLED:
                    backup_file = await self.backup.create()
                else:
                    logger.warning("Database backup disabled by configuration")

                if self.settings.ENABLE_MAINTENANCE:
                    state = await self._enter(RunPhase.MAINTENANCE_ON, state)
                    await asyncio.to_thread(self.maintenance.set_maintenance, True)
                    maintenance_on = True
            else:
                logger.info(f"Dry run ({self.dry_run.value}): skipping database backup and maintenance mode")

            state = await self._enter(RunPhase.MIGRATING, state)
            state = await self._migrate(state, resume=resume)

            if self.stop_requested:
                error = STOPPED_MESSAGE
            elif not dry:
                state = await self._enter(RunPhase.REMAPPING, state)
                await self.catalog.begin()
                await self.remapper.finalize()
                await self.catalog.commit()
                self._committed = state
                self.cursor_store.clear()
        except Exception as e:
            error = safe_error_message(e)
            logger.exception(f"Migration failed: {error}")
            try:
                await self.catalog.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {safe_error_message(rollback_error)}")
            self.remapper.forget_destination()
            # Only committed blocks count once the open one is rolled back
            state = replace(self._committed, phase=state.phase)
        finally:
            if maintenance_on:
                state = await self._enter(RunPhase.MAINTENANCE_OFF, state)
                try:
                    await asyncio.to_thread(self.maintenance.set_maintenance, False)
                except Exception as e:
                    logger.error(f"Failed to disable maintenance mode: {safe_error_message(e)}")
                    error = error or f"Failed to disable maintenance mode: {safe_error_message(e)}"

        if error:
            phase, status = RunPhase.ABORTED, "failed"
            logger.error(
                f"Migration aborted: {state.migrated} files migrated, {state.failed} failed ({error})"
            )
        else:
            phase, status = RunPhase.COMPLETE, "complete"
            logger.info(f"Migration completed: {state.migrated} files migrated, {state.failed} failed")

        self.phase = phase
        state = replace(state, phase=phase, status=status, error=error)
        await self._emit(state)
        return self._result(state, backup_file, error=error, checks=report)

    def _result(self, state: MigrationState, backup_file, *, error=None, checks=None) -> MigrationResult:
        return MigrationResult(
            success=error is None,
            phase=state.phase,
            files_migrated=state.migrated,
            files_failed=state.failed,
            bytes_transferred=state.bytes,
            dry_run=self.dry_run.enabled,
            backup_file=backup_file,
            cursor=self._cursor,
            error=error,
            checks=checks,
        )

    # ── Batch loop ───────────────────────────────────────────────

    @staticmethod
    def _advance(state: MigrationState, record: FileRecord, outcome: MigrationOutcome) -> MigrationState:
        if outcome.success:
            return replace(
                state,
                migrated=state.migrated + 1,
                bytes=state.bytes + outcome.bytes,
                current_file=record.path,
            )
        return replace(state, failed=state.failed + 1, current_file=record.path)

    async def _commit_block(self, state: MigrationState, source_id: int, last_file_id: int) -> None:
        await self.catalog.commit()
        self._committed = state
        if last_file_id and not self.dry_run.enabled:
            self._cursor = MigrationCursor(last_processed_file_id=last_file_id, source_storage_id=source_id)
            self.cursor_store.save(self._cursor)
        logger.debug(f"Committed block up to file ID {last_file_id}")

    async def _transfer(self, index: int, record: FileRecord) -> MigrationOutcome:
        return await self.migrator.transfer(record)

    async def _migrate(self, state: MigrationState, *, resume: bool) -> MigrationState:
        source_id = await self.remapper.source_storage_id()
        logger.info(f"Local storage ID: {source_id}")

        after_file_id = 0
        if resume:
            saved = self.cursor_store.load(source_id)
            if saved:
                after_file_id = saved.last_processed_file_id
                self._cursor = saved
                logger.info(f"Resuming after file ID {after_file_id}")

        if not self.dry_run.enabled:
            await self.catalog.create_migration_indexes()

        total = await self.batch_cursor.count(source_id, after_file_id)
        logger.info(f"Total files to migrate: {total}")
        state = replace(state, total=total)
        self._committed = state
        await self._emit(state)

        await self.catalog.begin()
        last_file_id = after_file_id
        uncommitted = 0

        while not self.stop_requested:
            records = await self.batch_cursor.next(source_id, after_file_id, self.batch_size)
            if not records:
                break

            for start in range(0, len(records), self.workers):
                if self.stop_requested:
                    break
                window = records[start:start + self.workers]
                outcomes = await run_parallel(window, self._transfer, concurrency=self.workers)

                # Catalog writes, counters and progress stay sequential in file id order
                for record, outcome in zip(window, outcomes):
                    if isinstance(outcome, Exception):
                        logger.error(f"Error migrating file ID {record.file_id}: {safe_error_message(outcome)}")
                        outcome = MigrationOutcome.failed(safe_error_message(outcome))
                    outcome = await self.migrator.apply(record, outcome)
                    state = self._advance(state, record, outcome)
                    last_file_id = record.file_id
                    uncommitted += 1
                    await self._emit(state)

                    if uncommitted >= self.commit_interval:
                        await self._commit_block(state, source_id, last_file_id)
                        await self.catalog.begin()
                        uncommitted = 0

            after_file_id = last_file_id
            if len(records) < self.batch_size:
                break

        await self._commit_block(state, source_id, last_file_id)
        if self.stop_requested:
            logger.warning(f"Stopped after file ID {last_file_id}; committed work is kept")
        return state
