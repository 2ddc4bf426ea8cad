"""Migrates a single file cache record to the object store.

``transfer`` does everything that touches the filesystem and the object store
and may run for several records at once. ``apply`` does the catalog write and
is always called one record at a time, after the upload it depends on.
"""
import asyncio
import logging
from pathlib import Path

from s3migrate.config import DryRunMode, Settings
from s3migrate.errors import TransferError
from s3migrate.services.models import (
    LOCAL_FILE_NOT_FOUND,
    VERIFICATION_FAILED,
    FileRecord,
    MigrationOutcome,
)
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.storage_ids import LocalStorage, object_key, parse_storage_id
from s3migrate.services.storage_remapper import StorageRemapper

logger = logging.getLogger(__name__)

_READ_CHUNK = 1024 * 1024


def _read_through(path: Path) -> int:
    """Read a file to the end and return the number of bytes seen."""
    total = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
            total += len(chunk)
    return total


class FileMigrator:
    """Local existence check, upload, verification and catalog repoint for one record."""

    def __init__(
        self,
        object_store: ObjectStore,
        remapper: StorageRemapper,
        settings: Settings,
        dry_run: DryRunMode = DryRunMode.OFF,
    ):
        self.object_store = object_store
        self.remapper = remapper
        self.dry_run = dry_run
        self.verify_uploads = settings.VERIFY_UPLOADS
        self.delete_missing = settings.DELETE_MISSING_FILES

        source = parse_storage_id(remapper.source_identifier)
        root = source.root if isinstance(source, LocalStorage) else settings.DATA_DIRECTORY
        self.source_root = Path(root)

    def local_path(self, record: FileRecord) -> Path:
        return self.source_root / str(record.storage_id) / record.path

    async def transfer(self, record: FileRecord) -> MigrationOutcome:
        """Check, upload and verify. Never writes to the catalog."""
        local_path = self.local_path(record)
        logger.debug(f"Migrating file ID: {record.file_id}, Path: {record.path}")

        if not local_path.is_file():
            logger.warning(f"Local file not found: {local_path}")
            return MigrationOutcome.failed(LOCAL_FILE_NOT_FOUND, missing=True)

        if self.dry_run is DryRunMode.NO_TRANSFER:
            return MigrationOutcome.ok(local_path.stat().st_size)
        if self.dry_run is DryRunMode.FULL:
            size = await asyncio.to_thread(_read_through, local_path)
            return MigrationOutcome.ok(size)

        key = object_key(record.file_id)
        try:
            uploaded = await self.object_store.upload(key, local_path)
        except TransferError as e:
            logger.error(f"Failed to upload file to S3: {record.path}")
            return MigrationOutcome.failed(str(e))

        if self.verify_uploads:
            try:
                stored_size = await self.object_store.head(key)
            except TransferError as e:
                logger.warning(f"File verification failed: {record.path} ({e})")
                return MigrationOutcome.failed(VERIFICATION_FAILED)
            if stored_size != uploaded.size:
                logger.warning(
                    f"Size mismatch for {key}: S3={stored_size}, Local={uploaded.size}"
                )
                return MigrationOutcome.failed(VERIFICATION_FAILED)

        return MigrationOutcome.ok(uploaded.size)

    async def apply(self, record: FileRecord, outcome: MigrationOutcome) -> MigrationOutcome:
        """Write the outcome of ``transfer`` to the catalog. CatalogWriteError propagates."""
        if self.dry_run.enabled:
            return outcome

        if outcome.missing and self.delete_missing:
            await self.remapper.delete_record(record.file_id)
            logger.info(f"Deleted missing file from database: {record.file_id}")
        elif outcome.success:
            destination_id = await self.remapper.ensure_destination()
            await self.remapper.repoint(record.file_id, destination_id)
            logger.debug(f"File migrated successfully: {record.path}")
        return outcome

    async def migrate(self, record: FileRecord) -> MigrationOutcome:
        outcome = await self.transfer(record)
        return await self.apply(record, outcome)
