"""Object store adapter over a boto3 S3 client.

boto3 is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``. Each request is bounded by connect/read timeouts and
botocore's standard retry mode with a fixed attempt budget; when the budget is
spent the call raises ``TransferError`` instead of retrying forever.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from s3migrate.config import Settings
from s3migrate.errors import ConnectivityError, TransferError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# Larger than any real object, used to switch multipart off
_NEVER = 2 ** 62


@dataclass(frozen=True)
class UploadResult:
    key: str
    size: int
    location: str


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    last_modified: Optional[datetime] = None


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def build_s3_client(settings: Settings) -> Any:
    """Create the boto3 client described by the S3_* settings."""
    config = Config(
        signature_version="s3v4",
        connect_timeout=settings.S3_CONNECT_TIMEOUT,
        read_timeout=settings.S3_READ_TIMEOUT,
        retries={"max_attempts": settings.S3_MAX_RETRIES, "mode": "standard"},
        s3={"addressing_style": "path" if settings.S3_USE_PATH_STYLE else "virtual"},
    )
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION,
        endpoint_url=settings.S3_ENDPOINT or None,
        aws_access_key_id=settings.S3_KEY,
        aws_secret_access_key=settings.S3_SECRET,
        config=config,
    )


class ObjectStore:
    """Uploads, verifies, lists and deletes objects in the configured bucket."""

    def __init__(self, settings: Settings, client: Any = None):
        self.bucket = settings.S3_BUCKET
        self.endpoint = settings.S3_ENDPOINT
        self._client = client if client is not None else build_s3_client(settings)
        threshold = settings.multipart_threshold_bytes if settings.S3_USE_MULTIPART else _NEVER
        self._transfer_config = TransferConfig(multipart_threshold=threshold)
        logger.info(f"S3 client initialized for bucket: {self.bucket}")

    def _location(self, key: str) -> str:
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"s3://{self.bucket}/{key}"

    async def ping(self) -> None:
        """Lightweight existence probe against the bucket."""
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 connection test failed: {e}")
            raise ConnectivityError(f"Failed to connect to S3 bucket {self.bucket}: {e}") from e
        logger.info(f"S3 connection test successful for bucket: {self.bucket}")

    async def upload(self, key: str, local_path: str | os.PathLike) -> UploadResult:
        """Upload a local file under ``key``. Multipart above the configured threshold."""
        size = os.path.getsize(local_path)
        logger.debug(f"Uploading file: {local_path} (Size: {size} bytes) to S3 key: {key}")
        try:
            await asyncio.to_thread(
                self._client.upload_file,
                os.fspath(local_path),
                self.bucket,
                key,
                Config=self._transfer_config,
            )
        except (S3UploadFailedError, ClientError, BotoCoreError, OSError) as e:
            logger.error(f"S3 upload failed for file {local_path}: {e}")
            raise TransferError(str(e) or type(e).__name__, key=key) from e
        return UploadResult(key=key, size=size, location=self._location(key))

    async def head(self, key: str) -> Optional[int]:
        """Size of the stored object, or None if it does not exist."""
        try:
            response = await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise TransferError(f"S3 head failed for {key}: {e}", key=key) from e
        except BotoCoreError as e:
            raise TransferError(f"S3 head failed for {key}: {e}", key=key) from e
        return int(response["ContentLength"])

    async def delete(self, key: str) -> None:
        logger.debug(f"Deleting S3 object: {key}")
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed for key {key}: {e}")
            raise TransferError(f"S3 delete failed for {key}: {e}", key=key) from e

    async def list(self, prefix: str = "", max_items: int = 1000) -> list[ObjectInfo]:
        """List up to ``max_items`` objects whose key starts with ``prefix``."""
        logger.debug(f"Listing S3 objects with prefix: {prefix} (max: {max_items})")

        def _collect() -> list[ObjectInfo]:
            paginator = self._client.get_paginator("list_objects_v2")
            objects: list[ObjectInfo] = []
            pages = paginator.paginate(
                Bucket=self.bucket,
                Prefix=prefix,
                PaginationConfig={"MaxItems": max_items},
            )
            for page in pages:
                for obj in page.get("Contents", []):
                    objects.append(ObjectInfo(
                        key=obj["Key"],
                        size=int(obj["Size"]),
                        last_modified=obj.get("LastModified"),
                    ))
            return objects[:max_items]

        try:
            return await asyncio.to_thread(_collect)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 list objects failed: {e}")
            raise TransferError(f"S3 list objects failed: {e}") from e
