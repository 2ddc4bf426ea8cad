"""Tests for the catalog store, batch cursor and storage remapper."""
import pytest
from sqlalchemy import select

from s3migrate.errors import CatalogWriteError, ConnectivityError, StorageNotFoundError
from s3migrate.models import Mount, Storage
from s3migrate.services.batch_cursor import BatchCursor
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.storage_remapper import StorageRemapper

from conftest import DESTINATION, HOME_ID, MIME_DIR, OTHER_ID, SOURCE_ID


# ---------------------------------------------------------------------------
# CatalogStore
# ---------------------------------------------------------------------------


class TestCatalogStore:

    async def test_execute_requires_connection(self, engine) -> None:
        store = CatalogStore(engine)
        with pytest.raises(ConnectivityError):
            await store.execute("SELECT 1")

    async def test_rollback_without_connection_is_noop(self, engine) -> None:
        await CatalogStore(engine).rollback()

    async def test_fetch_scalar_with_params(self, catalog) -> None:
        value = await catalog.fetch_scalar("SELECT id FROM oc_storages WHERE numeric_id = :n", {"n": HOME_ID})
        assert value == "home::alice"

    async def test_failed_statement_raises_catalog_write_error(self, catalog) -> None:
        with pytest.raises(CatalogWriteError):
            await catalog.execute("SELECT * FROM no_such_table")

    async def test_integrity_error_is_wrapped(self, catalog) -> None:
        await catalog.begin()
        with pytest.raises(CatalogWriteError, match="Constraint violation"):
            await catalog.execute(
                "INSERT INTO oc_storages (numeric_id, id, available) VALUES (:n, :id, 1)",
                {"n": 99, "id": "home::alice"},
            )
        await catalog.rollback()

    async def test_rollback_discards_open_block(self, catalog, fetch) -> None:
        await catalog.begin()
        await catalog.execute("DELETE FROM oc_mounts")
        await catalog.rollback()
        assert len(await fetch(select(Mount.id))) == 1

    async def test_ping(self, catalog) -> None:
        await catalog.ping()

    async def test_create_migration_indexes_twice(self, catalog) -> None:
        await catalog.create_migration_indexes()
        await catalog.create_migration_indexes()
        assert not catalog.in_transaction


# ---------------------------------------------------------------------------
# BatchCursor
# ---------------------------------------------------------------------------


class TestBatchCursor:

    async def test_orders_by_file_id_and_skips_non_candidates(self, catalog, add_file) -> None:
        await add_file(30, "files/c.txt", 3)
        await add_file(10, "files/a.txt", 1)
        await add_file(20, "files", 0, mimetype=MIME_DIR)
        await add_file(25, "", 0)
        await add_file(15, "files/other.txt", 5, storage=OTHER_ID)
        await add_file(40, "files/d.txt", 4)

        records = await BatchCursor(catalog).next(SOURCE_ID, 0, 10)
        assert [r.file_id for r in records] == [10, 30, 40]
        assert records[0].path == "files/a.txt"
        assert records[0].storage_id == SOURCE_ID

    async def test_limit_and_after(self, catalog, add_file) -> None:
        for file_id in (1, 2, 3, 4, 5):
            await add_file(file_id, f"files/{file_id}.txt", file_id)

        cursor = BatchCursor(catalog)
        first = await cursor.next(SOURCE_ID, 0, 2)
        second = await cursor.next(SOURCE_ID, first[-1].file_id, 2)
        last = await cursor.next(SOURCE_ID, second[-1].file_id, 2)

        assert [r.file_id for r in first] == [1, 2]
        assert [r.file_id for r in second] == [3, 4]
        assert [r.file_id for r in last] == [5]

    async def test_count(self, catalog, add_file) -> None:
        for file_id in (1, 2, 3):
            await add_file(file_id, f"files/{file_id}.txt", 1)
        await add_file(4, "files", 0, mimetype=MIME_DIR)

        cursor = BatchCursor(catalog)
        assert await cursor.count(SOURCE_ID) == 3
        assert await cursor.count(SOURCE_ID, after_file_id=2) == 1


# ---------------------------------------------------------------------------
# StorageRemapper
# ---------------------------------------------------------------------------


class TestStorageRemapper:

    async def test_source_storage_id(self, catalog, settings) -> None:
        assert await StorageRemapper(catalog, settings).source_storage_id() == SOURCE_ID

    async def test_missing_source_raises(self, catalog, make_settings, tmp_path) -> None:
        remapper = StorageRemapper(catalog, make_settings(DATA_DIRECTORY=str(tmp_path / "elsewhere")))
        with pytest.raises(StorageNotFoundError):
            await remapper.source_storage_id()

    async def test_ensure_destination_creates_one_row(self, catalog, settings, destination_rows) -> None:
        remapper = StorageRemapper(catalog, settings)
        assert await remapper.destination_storage_id() is None

        await catalog.begin()
        first = await remapper.ensure_destination()
        remapper.forget_destination()
        second = await remapper.ensure_destination()
        await catalog.commit()

        assert first == second
        assert [row[0] for row in await destination_rows()] == [first]

    async def test_ensure_destination_reuses_existing_row(self, catalog, settings, engine) -> None:
        async with engine.begin() as conn:
            await conn.execute(Storage.__table__.insert().values(numeric_id=77, id=DESTINATION, available=1))
        remapper = StorageRemapper(catalog, settings)
        assert await remapper.ensure_destination() == 77

    async def test_finalize_remaps_home_storages_and_mounts(self, catalog, settings, fetch) -> None:
        remapper = StorageRemapper(catalog, settings)
        await catalog.begin()
        result = await remapper.finalize()
        await catalog.commit()

        assert result.mounts_updated == 1
        assert result.storages_renamed == 1
        storage_ids = {row[0]: row[1] for row in await fetch(select(Storage.numeric_id, Storage.id))}
        assert storage_ids[HOME_ID] == "object::user:alice"
        assert storage_ids[OTHER_ID] == "shared::/team"
        assert storage_ids[SOURCE_ID].startswith("local::")
        providers = [row[0] for row in await fetch(select(Mount.mount_provider_class))]
        assert providers == ["OC\\Files\\Mount\\ObjectHomeMountProvider"]

    async def test_finalize_is_idempotent(self, catalog, settings) -> None:
        remapper = StorageRemapper(catalog, settings)
        await catalog.begin()
        await remapper.finalize()
        again = await remapper.finalize()
        await catalog.commit()

        assert again.mounts_updated == 0
        assert again.storages_renamed == 0
