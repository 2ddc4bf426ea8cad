"""Ordered, resumable selection of files still living on the source storage."""
import logging

from sqlalchemy import and_, func, select

from s3migrate.models import DIRECTORY_MIMETYPE, FileCache, Mimetype
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.models import FileRecord

logger = logging.getLogger(__name__)


def _candidates(source_storage_id: int, after_file_id: int):
    return and_(
        FileCache.storage == source_storage_id,
        FileCache.fileid > after_file_id,
        Mimetype.mimetype != DIRECTORY_MIMETYPE,
        FileCache.path != "",
    )


class BatchCursor:
    """Pages through candidate files by ascending file id.

    Selection is keyed on the current storage, so records already repointed to
    the destination never come back, and ``after_file_id`` lets a stopped run
    pick up exactly where its last commit left off.
    """

    def __init__(self, catalog: CatalogStore):
        self.catalog = catalog

    async def next(self, source_storage_id: int, after_file_id: int, limit: int) -> list[FileRecord]:
        """Return up to ``limit`` records with file id above ``after_file_id``.

        Fewer than ``limit`` records means there is nothing left.
        """
        logger.debug(f"Getting file batch starting after file ID: {after_file_id}")
        stmt = (
            select(FileCache.fileid, FileCache.path, FileCache.size, FileCache.storage)
            .join(Mimetype, FileCache.mimetype == Mimetype.id)
            .where(_candidates(source_storage_id, after_file_id))
            .order_by(FileCache.fileid.asc())
            .limit(limit)
        )
        rows = await self.catalog.fetch_all(stmt)
        return [
            FileRecord(file_id=row.fileid, path=row.path, size=row.size or 0, storage_id=row.storage)
            for row in rows
        ]

    async def count(self, source_storage_id: int, after_file_id: int = 0) -> int:
        stmt = (
            select(func.count())
            .select_from(FileCache)
            .join(Mimetype, FileCache.mimetype == Mimetype.id)
            .where(_candidates(source_storage_id, after_file_id))
        )
        return int(await self.catalog.fetch_scalar(stmt) or 0)
