"""Parsed storage identifiers.

The catalog encodes the backend of a storage in its string id:

    local::/var/www/nextcloud/data/      -> LocalStorage
    home::alice                          -> HomeStorage
    object::user:alice                   -> ObjectUserStorage
    object::store:amazon::my-bucket      -> ObjectBucketStorage

Identifiers are parsed once with ``parse_storage_id`` and dispatched with
``isinstance`` checks, so no caller ever slices prefixes by hand.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Union

LOCAL_PREFIX = "local::"
HOME_PREFIX = "home::"
OBJECT_USER_PREFIX = "object::user:"
OBJECT_STORE_PREFIX = "object::store:"


@dataclass(frozen=True)
class LocalStorage:
    root: str

    def __str__(self) -> str:
        return f"{LOCAL_PREFIX}{self.root}"


@dataclass(frozen=True)
class HomeStorage:
    user: str

    def __str__(self) -> str:
        return f"{HOME_PREFIX}{self.user}"


@dataclass(frozen=True)
class ObjectUserStorage:
    user: str

    def __str__(self) -> str:
        return f"{OBJECT_USER_PREFIX}{self.user}"


@dataclass(frozen=True)
class ObjectBucketStorage:
    provider: str
    bucket: str

    def __str__(self) -> str:
        return f"{OBJECT_STORE_PREFIX}{self.provider}::{self.bucket}"


@dataclass(frozen=True)
class UnknownStorage:
    """Anything else (shared, external mounts). Kept verbatim."""
    raw: str

    def __str__(self) -> str:
        return self.raw


StorageIdentifier = Union[LocalStorage, HomeStorage, ObjectUserStorage, ObjectBucketStorage, UnknownStorage]


def parse_storage_id(raw: str) -> StorageIdentifier:
    """Parse a catalog storage id into its tagged form."""
    if raw.startswith(LOCAL_PREFIX):
        return LocalStorage(root=raw[len(LOCAL_PREFIX):])
    if raw.startswith(HOME_PREFIX):
        return HomeStorage(user=raw[len(HOME_PREFIX):])
    if raw.startswith(OBJECT_USER_PREFIX):
        return ObjectUserStorage(user=raw[len(OBJECT_USER_PREFIX):])
    if raw.startswith(OBJECT_STORE_PREFIX):
        provider, sep, bucket = raw[len(OBJECT_STORE_PREFIX):].partition("::")
        if sep and provider and bucket:
            return ObjectBucketStorage(provider=provider, bucket=bucket)
    return UnknownStorage(raw=raw)


def local_source_id(data_directory: str) -> str:
    """Identifier of the local storage rooted at the data directory (always one trailing slash)."""
    return str(LocalStorage(root=data_directory.rstrip("/") + "/"))


def object_destination_id(provider: str, bucket: str) -> str:
    return str(ObjectBucketStorage(provider=provider, bucket=bucket))


def object_key(file_id: int) -> str:
    """Object key of a file. Depends only on the file id, never on its path."""
    return f"urn:oid:{int(file_id)}"


def user_data_path(data_directory: str | Path, storage: StorageIdentifier, path: str) -> Path:
    """Local path of a file cache entry given the storage it belongs to.

    Per-user storages keep their files under ``<data_dir>/<user>/``; every
    other storage is resolved relative to the data directory itself.
    """
    base = Path(data_directory)
    if isinstance(storage, (ObjectUserStorage, HomeStorage)):
        return base / storage.user / path
    return base / path
