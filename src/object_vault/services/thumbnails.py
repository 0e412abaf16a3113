"""Thumbnail cache-aside layer.

Thumbnails are keyed by immutable object id and never invalidated in place: a
changed file is a new object with a new id. A missing thumbnail is rendered
from the original and persisted before it is returned.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from functools import partial
from uuid import UUID

from object_vault.clients.blob_store import BlobStore
from object_vault.config import settings
from object_vault.errors import (
    BlobNotFoundError,
    ObjectNotFoundError,
    StorageError,
    ThumbnailUnavailableError,
)
from object_vault.extraction.image import THUMBNAIL_CONTENT_TYPE, render_thumbnail
from object_vault.services.catalog import ObjectRepository
from object_vault.utils.content_type import is_image

logger = logging.getLogger(__name__)

FetchOriginal = Callable[[], Awaitable[bytes]]


class ThumbnailCache:
    """Serve thumbnails from ``thumbnail_store``, rendering them on a miss.

    Rendering is CPU-bound and runs on a dedicated executor so it cannot stall
    I/O-bound request handling on the event loop.

    Usage:
        cache = ThumbnailCache(repository, originals, thumbnails)
        webp = await cache.thumbnail_for(owner_id, object_id)
    """

    def __init__(
        self,
        repository: ObjectRepository,
        original_store: BlobStore,
        thumbnail_store: BlobStore,
        *,
        size: int | None = None,
        quality: float | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._repository = repository
        self._original_store = original_store
        self._thumbnail_store = thumbnail_store
        self._size = size or settings.thumbnail_size
        self._quality = quality or settings.thumbnail_quality
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.thumbnail_workers, thread_name_prefix="thumbnail"
        )

    async def thumbnail_for(self, owner_id: UUID, object_id: UUID) -> bytes:
        """Thumbnail for one of ``owner_id``'s objects.

        Returns:
            WebP thumbnail bytes.

        Raises:
            ObjectNotFoundError: If the owner has no such object, or its
                original blob is missing.
            ThumbnailUnavailableError: If the object is not an image or cannot be rendered.
        """
        obj = await self._repository.get(owner_id, object_id)
        if not is_image(obj.content_type):
            raise ThumbnailUnavailableError(f"Object {object_id} ({obj.content_type}) has no thumbnail")

        async def fetch_original() -> bytes:
            try:
                return await self._original_store.get(owner_id, object_id)
            except BlobNotFoundError as e:
                logger.error("object %s has a catalog row but no blob", object_id)
                raise ObjectNotFoundError(object_id) from e

        return await self.get_thumbnail(owner_id, object_id, fetch_original)

    async def get_thumbnail(
        self,
        owner_id: UUID,
        object_id: UUID,
        fetch_original: FetchOriginal,
    ) -> bytes:
        """Return the cached thumbnail, rendering and persisting it on a miss.

        Args:
            owner_id: Owner of the object.
            object_id: Object the thumbnail belongs to.
            fetch_original: Loads the original bytes. Called only on a miss.

        Returns:
            WebP thumbnail bytes.

        Raises:
            ThumbnailUnavailableError: If the original cannot be rendered. No
                cache entry is written in that case.
        """
        cached = await self._lookup(owner_id, object_id)
        if cached is not None:
            logger.debug("thumbnail cache hit for object %s", object_id)
            return cached

        original = await fetch_original()
        loop = asyncio.get_running_loop()
        thumbnail = await loop.run_in_executor(
            self._executor,
            partial(render_thumbnail, original, size=self._size, quality=self._quality),
        )

        try:
            await self._thumbnail_store.put(
                owner_id, object_id, io.BytesIO(thumbnail), len(thumbnail), THUMBNAIL_CONTENT_TYPE
            )
        except Exception:
            # Still serve the rendered bytes; the next request renders again
            logger.exception("failed to persist thumbnail for object %s", object_id)
        else:
            logger.debug("created thumbnail for object %s (%d bytes)", object_id, len(thumbnail))

        return thumbnail

    async def evict(self, owner_id: UUID, object_id: UUID) -> None:
        """Remove a cached thumbnail (used when the object itself is deleted)."""
        try:
            await self._thumbnail_store.delete(owner_id, object_id)
        except BlobNotFoundError:
            pass

    async def _lookup(self, owner_id: UUID, object_id: UUID) -> bytes | None:
        try:
            return await self._thumbnail_store.get(owner_id, object_id)
        except BlobNotFoundError:
            return None
        except StorageError as e:
            logger.warning("thumbnail lookup for object %s failed, rendering instead: %s", object_id, e)
            return None

    def close(self) -> None:
        self._executor.shutdown(wait=False)
