"""Storage row lookups, per-record repointing and the final bulk remap."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import String, delete, func, insert, literal, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from s3migrate.config import Settings
from s3migrate.errors import StorageNotFoundError
from s3migrate.models import FileCache, Mount, Storage
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.storage_ids import (
    HOME_PREFIX,
    OBJECT_USER_PREFIX,
    local_source_id,
    object_destination_id,
)

logger = logging.getLogger(__name__)

LOCAL_HOME_PROVIDER = "LocalHomeMountProvider"
OBJECT_HOME_PROVIDER = "ObjectHomeMountProvider"


@dataclass(frozen=True)
class RemapResult:
    mounts_updated: int
    storages_renamed: int


class StorageRemapper:
    """Resolves the source/destination storages and rewrites storage references."""

    def __init__(self, catalog: CatalogStore, settings: Settings):
        self.catalog = catalog
        self.source_identifier = local_source_id(settings.DATA_DIRECTORY)
        self.destination_identifier = object_destination_id(settings.S3_PROVIDER, settings.S3_BUCKET)
        self._destination_id: Optional[int] = None

    async def _lookup(self, identifier: str) -> Optional[int]:
        value = await self.catalog.fetch_scalar(
            select(Storage.numeric_id).where(Storage.id == identifier)
        )
        return int(value) if value is not None else None

    async def source_storage_id(self) -> int:
        logger.debug("Looking up local storage ID")
        storage_id = await self._lookup(self.source_identifier)
        if storage_id is None:
            raise StorageNotFoundError(f"Local storage not found for path: {self.source_identifier}")
        return storage_id

    async def destination_storage_id(self) -> Optional[int]:
        logger.debug("Looking up object storage ID")
        return await self._lookup(self.destination_identifier)

    def _insert_if_absent(self):
        values = {"id": self.destination_identifier, "available": 1}
        dialect = self.catalog.dialect_name
        if dialect == "postgresql":
            return pg_insert(Storage).values(**values).on_conflict_do_nothing(index_elements=["id"])
        if dialect == "sqlite":
            return sqlite_insert(Storage).values(**values).on_conflict_do_nothing(index_elements=["id"])
        if dialect in ("mysql", "mariadb"):
            return insert(Storage).values(**values).prefix_with("IGNORE")
        return insert(Storage).values(**values)

    async def ensure_destination(self) -> int:
        """Return the destination storage id, creating the row exactly once.

        Lookup, insert-if-absent, lookup again: a concurrent creator that wins
        the race leaves us reusing its row instead of adding a duplicate.
        """
        if self._destination_id is not None:
            return self._destination_id

        storage_id = await self.destination_storage_id()
        if storage_id is None:
            logger.info(f"Creating object storage in database: {self.destination_identifier}")
            await self.catalog.execute(self._insert_if_absent())
            storage_id = await self.destination_storage_id()
            if storage_id is None:
                raise StorageNotFoundError(f"Object storage could not be created: {self.destination_identifier}")

        self._destination_id = storage_id
        return storage_id

    def forget_destination(self) -> None:
        """Drop the cached destination id, e.g. after the block that created it was rolled back."""
        self._destination_id = None

    async def repoint(self, file_id: int, storage_id: int) -> None:
        await self.catalog.execute(
            update(FileCache).where(FileCache.fileid == file_id).values(storage=storage_id)
        )

    async def delete_record(self, file_id: int) -> None:
        await self.catalog.execute(delete(FileCache).where(FileCache.fileid == file_id))

    async def count_on_storage(self, storage_id: int) -> int:
        value = await self.catalog.fetch_scalar(
            select(func.count()).select_from(FileCache).where(FileCache.storage == storage_id)
        )
        return int(value or 0)

    async def finalize(self) -> RemapResult:
        """Switch home mounts and home storages over to object storage.

        Both statements are keyed on the old scheme, so running them a second
        time matches nothing. Storages keep their numeric id, which means every
        file cache row that points at a renamed home storage follows along.
        """
        logger.info("Updating storage providers")

        mounts = await self.catalog.execute(
            update(Mount)
            .where(Mount.mount_provider_class.like(f"%{LOCAL_HOME_PROVIDER}%"))
            .values(
                mount_provider_class=func.replace(
                    Mount.mount_provider_class, LOCAL_HOME_PROVIDER, OBJECT_HOME_PROVIDER
                )
            )
        )

        renamed_id = literal(OBJECT_USER_PREFIX, String).concat(
            func.substr(Storage.id, len(HOME_PREFIX) + 1, type_=String)
        )
        storages = await self.catalog.execute(
            update(Storage).where(Storage.id.like(f"{HOME_PREFIX}%")).values(id=renamed_id)
        )

        result = RemapResult(mounts_updated=mounts.rowcount or 0, storages_renamed=storages.rowcount or 0)
        logger.info(
            f"Remapped {result.mounts_updated} mount(s) and {result.storages_renamed} home storage(s)"
        )
        return result
