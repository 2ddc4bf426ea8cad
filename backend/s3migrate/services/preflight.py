"""Read-only readiness checks run before a migration is allowed to start."""
import logging
from pathlib import Path

from s3migrate.config import Settings
from s3migrate.errors import safe_error_message
from s3migrate.services.batch_cursor import BatchCursor
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.models import CheckReport
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.storage_remapper import StorageRemapper

logger = logging.getLogger(__name__)


class PreflightChecker:
    """Runs every check and reports them together; one failure never hides the rest."""

    def __init__(
        self,
        catalog: CatalogStore,
        object_store: ObjectStore,
        remapper: StorageRemapper,
        settings: Settings,
    ):
        self.catalog = catalog
        self.object_store = object_store
        self.remapper = remapper
        self.cursor = BatchCursor(catalog)
        self.settings = settings

    async def run(self) -> CheckReport:
        logger.info("Running pre-migration checks")
        report = CheckReport()

        await self._check_database(report)
        await self._check_object_store(report)
        source_id = await self._check_source(report)
        await self._check_destination(report)
        if source_id is not None:
            await self._count_candidates(report, source_id)
        self._check_directory(report, "data_dir", "Data Directory", self.settings.DATA_DIRECTORY)
        self._check_directory(report, "backup_dir", "Backup Directory", self.settings.BACKUP_DIRECTORY)

        if report.success:
            logger.info("Pre-migration checks passed")
        else:
            failed = [c.name for c in report.checks if c.status == "error"]
            logger.warning(f"Pre-migration checks failed: {', '.join(failed)}")
        return report

    async def _check_database(self, report: CheckReport) -> None:
        try:
            await self.catalog.ping()
            report.add("database", "Database Connection", "ok", "Successfully connected to database")
        except Exception as e:
            report.add("database", "Database Connection", "error",
                       f"Failed to connect to database: {safe_error_message(e)}")

    async def _check_object_store(self, report: CheckReport) -> None:
        bucket = self.settings.S3_BUCKET
        try:
            await self.object_store.ping()
            report.add("s3", "S3 Connection", "ok", f"Successfully connected to S3 bucket: {bucket}")
        except Exception as e:
            report.add("s3", "S3 Connection", "error", f"S3 connection error: {safe_error_message(e)}")

    async def _check_source(self, report: CheckReport) -> int | None:
        try:
            source_id = await self.remapper.source_storage_id()
        except Exception as e:
            await self.catalog.rollback()
            report.add("local_storage", "Local Storage", "error",
                       f"Failed to find local storage ID: {safe_error_message(e)}")
            return None
        report.add("local_storage", "Local Storage", "ok", f"Local storage ID found: {source_id}")
        return source_id

    async def _check_destination(self, report: CheckReport) -> None:
        try:
            destination_id = await self.remapper.destination_storage_id()
            if destination_id is None:
                report.add("object_storage", "Object Storage", "info",
                           "Object storage does not exist yet and will be created")
                return
            report.add("object_storage", "Object Storage", "info",
                       f"Object storage already exists with ID: {destination_id}")
            file_count = await self.remapper.count_on_storage(destination_id)
            if file_count > 0:
                report.add("object_files", "Object Storage Files", "warning",
                           f"Object storage already contains {file_count} files")
        except Exception as e:
            await self.catalog.rollback()
            report.add("object_storage", "Object Storage", "error",
                       f"Error checking object storage: {safe_error_message(e)}")

    async def _count_candidates(self, report: CheckReport, source_id: int) -> None:
        try:
            total = await self.cursor.count(source_id)
            report.add("candidates", "Files To Migrate", "info", f"{total} files on local storage")
        except Exception as e:
            await self.catalog.rollback()
            report.add("candidates", "Files To Migrate", "error",
                       f"Failed to count files: {safe_error_message(e)}")

    @staticmethod
    def _check_directory(report: CheckReport, key: str, name: str, directory: str) -> None:
        if directory and Path(directory).is_dir():
            report.add(key, name, "ok", f"{name} exists: {directory}")
        else:
            report.add(key, name, "error", f"{name} does not exist: {directory}")
