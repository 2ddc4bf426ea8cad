"""Pytest configuration and fixtures.

Every test gets its own SQLite catalog file with the Nextcloud tables, a data
directory on disk and an in-memory stand-in for the S3 client.
"""
import logging
from pathlib import Path

import pytest
import pytest_asyncio
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import create_async_engine

from s3migrate.config import DryRunMode, Settings
from s3migrate.models import Base, FileCache, Mimetype, Mount, Storage
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.storage_ids import local_source_id

SOURCE_ID = 1
HOME_ID = 2
OTHER_ID = 3

MIME_DIR = 1
MIME_TEXT = 2
MIME_PNG = 3

DESTINATION = "object::store:amazon::test-bucket"


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("aiosqlite").setLevel(logging.INFO)


def client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError(
        error_response={"Error": {"Code": code, "Message": "test"}},
        operation_name=operation,
    )


class FakeS3Client:
    """Just enough of the boto3 S3 client for ObjectStore, backed by a dict."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.uploads: list[str] = []
        self.deleted: list[str] = []
        self.reported_sizes: dict[str, int] = {}
        self.failing_keys: set[str] = set()
        self.bucket_reachable = True

    def head_bucket(self, Bucket):
        if not self.bucket_reachable:
            raise client_error("403", "HeadBucket")
        return {}

    def upload_file(self, Filename, Bucket, Key, Config=None):
        if Key in self.failing_keys:
            raise S3UploadFailedError(f"Failed to upload {Filename} to {Bucket}/{Key}: boom")
        self.objects[Key] = Path(Filename).read_bytes()
        self.uploads.append(Key)

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("404")
        return {"ContentLength": self.reported_sizes.get(Key, len(self.objects[Key]))}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        self.deleted.append(Key)
        return {}


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def nextcloud_dir(tmp_path) -> Path:
    path = tmp_path / "nextcloud"
    (path / "config").mkdir(parents=True)
    (path / "config" / "config.php").write_text(
        "<?php\n$CONFIG = array (\n  'instanceid' => 'oc123',\n  'maintenance' => false,\n);\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def make_settings(tmp_path, data_dir, backup_dir, nextcloud_dir):
    def _make(**overrides) -> Settings:
        values = dict(
            DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}",
            NEXTCLOUD_DIR=str(nextcloud_dir),
            DATA_DIRECTORY=str(data_dir),
            BACKUP_DIRECTORY=str(backup_dir),
            S3_BUCKET="test-bucket",
            S3_REGION="us-east-1",
            S3_KEY="test-key",
            S3_SECRET="test-secret",
            DRY_RUN=DryRunMode.OFF,
            ENABLE_MAINTENANCE=False,
            BACKUP_ENABLED=False,
            LOG_FILE="",
        )
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def engine(settings, data_dir):
    """Catalog with the mimetypes, a local source storage, a home storage and its mount."""
    engine = create_async_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(insert(Mimetype), [
            {"id": MIME_DIR, "mimetype": "httpd/unix-directory"},
            {"id": MIME_TEXT, "mimetype": "text/plain"},
            {"id": MIME_PNG, "mimetype": "image/png"},
        ])
        await conn.execute(insert(Storage), [
            {"numeric_id": SOURCE_ID, "id": local_source_id(str(data_dir)), "available": 1},
            {"numeric_id": HOME_ID, "id": "home::alice", "available": 1},
            {"numeric_id": OTHER_ID, "id": "shared::/team", "available": 1},
        ])
        await conn.execute(insert(Mount).values(
            storage_id=HOME_ID,
            root_id=1,
            user_id="alice",
            mount_point="/alice/",
            mount_provider_class="OC\\Files\\Mount\\LocalHomeMountProvider",
        ))
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(engine):
    store = CatalogStore(engine)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def object_store(settings, s3_client) -> ObjectStore:
    return ObjectStore(settings, client=s3_client)


@pytest.fixture
def add_file(engine, data_dir):
    """Insert a file cache row and (unless ``missing``) its bytes under ``<data>/<storage>/<path>``."""
    async def _add(file_id, path, size, *, storage=SOURCE_ID, mimetype=MIME_TEXT, missing=False, storage_mtime=0):
        async with engine.begin() as conn:
            await conn.execute(insert(FileCache).values(
                fileid=file_id,
                storage=storage,
                path=path,
                name=path.rsplit("/", 1)[-1],
                mimetype=mimetype,
                size=size,
                storage_mtime=storage_mtime,
            ))
        if not missing and mimetype != MIME_DIR and path:
            local = data_dir / str(storage) / path
            local.parent.mkdir(parents=True, exist_ok=True)
            local.write_bytes(b"x" * size)
    return _add


@pytest.fixture
def fetch(engine):
    """Run a read-only query on a fresh connection."""
    async def _fetch(stmt):
        async with engine.connect() as conn:
            return (await conn.execute(stmt)).all()
    return _fetch


@pytest.fixture
def storage_of(fetch):
    async def _storage_of(file_id):
        rows = await fetch(select(FileCache.storage).where(FileCache.fileid == file_id))
        return rows[0][0] if rows else None
    return _storage_of


@pytest.fixture
def destination_rows(fetch):
    async def _rows():
        return await fetch(select(Storage.numeric_id).where(Storage.id == DESTINATION))
    return _rows
