"""Blob store contract and S3-compatible implementation.

Blobs are addressed by ``(owner_id, object_id)`` under a key prefix, so the
original uploads (``vaults/``) and derived thumbnails (``thumbnails/``) live in
separate namespaces of the same bucket.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import BinaryIO, Protocol
from uuid import UUID

from minio import Minio
from minio.error import MinioException, S3Error

from object_vault.config import settings
from object_vault.errors import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)

VAULT_PREFIX = "vaults"
THUMBNAIL_PREFIX = "thumbnails"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchObject"})


class BlobStore(Protocol):
    """Durable key -> bytes storage addressed by owner and object id."""

    async def put(
        self,
        owner_id: UUID,
        object_id: UUID,
        data: BinaryIO,
        length: int,
        content_type: str,
    ) -> int:
        """Store ``length`` bytes read from ``data``. Returns the stored size."""
        ...

    async def get(self, owner_id: UUID, object_id: UUID) -> bytes:
        """Read a blob. Raises ``BlobNotFoundError`` if it does not exist."""
        ...

    async def delete(self, owner_id: UUID, object_id: UUID) -> None:
        """Delete a blob. Raises ``StorageError`` on failure."""
        ...


def blob_key(prefix: str, owner_id: UUID, object_id: UUID) -> str:
    return f"{prefix}/{owner_id}/{object_id}"


class S3BlobStore:
    """Blob store backed by an S3-compatible bucket through the MinIO client.

    The MinIO client is synchronous; every call runs in a worker thread so the
    event loop stays free for concurrent uploads.

    Usage:
        store = S3BlobStore.from_settings(prefix=VAULT_PREFIX)
        size = await store.put(owner_id, object_id, stream, length, "image/png")
    """

    def __init__(self, client: Minio, bucket: str, *, prefix: str = VAULT_PREFIX) -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = prefix

    @classmethod
    def from_settings(cls, *, prefix: str = VAULT_PREFIX, client: Minio | None = None) -> S3BlobStore:
        client = client or Minio(
            endpoint=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            secure=settings.s3_secure,
            region=settings.s3_region,
        )
        return cls(client, settings.s3_bucket, prefix=prefix)

    async def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""

        def _ensure() -> None:
            if not self._client.bucket_exists(bucket_name=self._bucket):
                self._client.make_bucket(bucket_name=self._bucket)
                logger.info("created bucket %s", self._bucket)

        try:
            await asyncio.to_thread(_ensure)
        except MinioException as e:
            raise StorageError(f"Cannot access bucket {self._bucket}: {e}") from e

    async def put(
        self,
        owner_id: UUID,
        object_id: UUID,
        data: BinaryIO,
        length: int,
        content_type: str,
    ) -> int:
        key = blob_key(self._prefix, owner_id, object_id)
        start_time = time.time()
        try:
            await asyncio.to_thread(
                self._client.put_object,
                bucket_name=self._bucket,
                object_name=key,
                data=data,
                length=length,
                content_type=content_type,
            )
        except MinioException as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

        if settings.log_api_calls:
            elapsed = (time.time() - start_time) * 1000  # ms
            logger.info("[S3] put %s (%d bytes, %.0fms)", key, length, elapsed)
        return length

    async def get(self, owner_id: UUID, object_id: UUID) -> bytes:
        key = blob_key(self._prefix, owner_id, object_id)

        def _read() -> bytes:
            response = self._client.get_object(bucket_name=self._bucket, object_name=key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

        try:
            return await asyncio.to_thread(_read)
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                raise BlobNotFoundError(key) from e
            raise StorageError(f"Failed to read {key}: {e}") from e
        except MinioException as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def delete(self, owner_id: UUID, object_id: UUID) -> None:
        key = blob_key(self._prefix, owner_id, object_id)
        try:
            await asyncio.to_thread(
                self._client.remove_object,
                bucket_name=self._bucket,
                object_name=key,
            )
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                raise BlobNotFoundError(key) from e
            raise StorageError(f"Failed to delete {key}: {e}") from e
        except MinioException as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
