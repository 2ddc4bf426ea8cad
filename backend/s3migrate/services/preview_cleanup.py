"""Cleanup of generated preview images (``appdata_*/preview/``).

Previews are derived data: they can always be regenerated, so old ones are
deleted instead of being migrated.
"""
import logging
import time
from typing import Optional

from sqlalchemy import delete, select

from s3migrate.config import DryRunMode, Settings
from s3migrate.errors import TransferError
from s3migrate.models import DIRECTORY_MIMETYPE, FileCache, Mimetype, Storage
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.models import CleanupResult
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.storage_ids import object_key, parse_storage_id, user_data_path

logger = logging.getLogger(__name__)

PREVIEW_PATH_PATTERN = "appdata_%/preview/%"
SECONDS_PER_DAY = 86400


class PreviewCleaner:
    def __init__(
        self,
        catalog: CatalogStore,
        object_store: ObjectStore,
        settings: Settings,
        dry_run: Optional[DryRunMode] = None,
    ):
        self.catalog = catalog
        self.object_store = object_store
        self.data_directory = settings.DATA_DIRECTORY
        self.dry_run = dry_run if dry_run is not None else settings.DRY_RUN

    async def cleanup(self, max_age_days: int, max_count: int = 1000, now: Optional[float] = None) -> CleanupResult:
        """Delete up to ``max_count`` previews older than ``max_age_days``, oldest first.

        ``max_age_days <= 0`` disables cleanup and does not touch the catalog.
        In a dry run nothing is deleted; the result reports what would be freed.
        """
        logger.info(f"Cleaning up preview images (max age: {max_age_days} days, max count: {max_count})")
        if max_age_days <= 0:
            logger.info("Preview cleanup disabled (max age is 0)")
            return CleanupResult()

        await self.catalog.connect()
        cutoff = int((now if now is not None else time.time()) - max_age_days * SECONDS_PER_DAY)
        stmt = (
            select(
                FileCache.fileid,
                FileCache.path,
                FileCache.size,
                Storage.id.label("storage_key"),
            )
            .join(Storage, Storage.numeric_id == FileCache.storage)
            .join(Mimetype, FileCache.mimetype == Mimetype.id)
            .where(
                FileCache.path.like(PREVIEW_PATH_PATTERN),
                Mimetype.mimetype != DIRECTORY_MIMETYPE,
                FileCache.storage_mtime < cutoff,
            )
            .order_by(FileCache.storage_mtime.asc())
            .limit(max_count)
        )
        previews = await self.catalog.fetch_all(stmt)

        deleted = 0
        freed = 0
        try:
            await self.catalog.begin()
            for preview in previews:
                if not self.dry_run.enabled:
                    await self._delete_preview(preview)
                deleted += 1
                freed += preview.size or 0
                logger.debug(f"Deleted preview: {preview.path}")
            await self.catalog.commit()
        except Exception:
            await self.catalog.rollback()
            raise

        logger.info(f"Preview cleanup complete: deleted {deleted} files ({freed} bytes)")
        return CleanupResult(deleted=deleted, bytes_freed=freed)

    async def _delete_preview(self, preview) -> None:
        try:
            await self.object_store.delete(object_key(preview.fileid))
        except TransferError as e:
            logger.warning(f"Could not delete preview object {preview.fileid}: {e}")

        local_path = user_data_path(self.data_directory, parse_storage_id(preview.storage_key), preview.path)
        if local_path.is_file():
            try:
                local_path.unlink()
            except OSError as e:
                logger.warning(f"Could not delete local preview {local_path}: {e}")

        await self.catalog.execute(delete(FileCache).where(FileCache.fileid == preview.fileid))
