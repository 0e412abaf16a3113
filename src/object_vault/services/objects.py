"""Read, publish, delete and search use-cases over the catalog and blob store."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from object_vault.clients.blob_store import BlobStore
from object_vault.clients.search_index import SearchIndex
from object_vault.config import settings
from object_vault.errors import BlobNotFoundError, ObjectAlreadyPublicError, ObjectNotFoundError
from object_vault.models import StoredObject
from object_vault.services.catalog import ObjectRepository, make_slug
from object_vault.services.thumbnails import ThumbnailCache

logger = logging.getLogger(__name__)


class ObjectService:
    """Owner-scoped operations on stored objects.

    Usage:
        service = ObjectService(repository, blob_store, search_index, thumbnails)
        obj, data = await service.read(owner_id, object_id)
    """

    def __init__(
        self,
        repository: ObjectRepository,
        blob_store: BlobStore,
        search_index: SearchIndex,
        thumbnails: ThumbnailCache,
    ) -> None:
        self._repository = repository
        self._blob_store = blob_store
        self._search_index = search_index
        self._thumbnails = thumbnails

    async def get(self, owner_id: UUID, object_id: UUID) -> StoredObject:
        return await self._repository.get(owner_id, object_id)

    async def read(self, owner_id: UUID, object_id: UUID) -> tuple[StoredObject, bytes]:
        """Catalog row and raw bytes of an object.

        A row whose blob has gone missing is reported as not found.
        """
        obj = await self._repository.get(owner_id, object_id)
        return obj, await self._read_blob(obj)

    async def read_public(self, slug: str) -> tuple[StoredObject, bytes]:
        obj = await self._repository.get_by_slug(slug)
        return obj, await self._read_blob(obj)

    async def list_objects(self, owner_id: UUID, *, limit: int = 50, skip: int = 0) -> list[StoredObject]:
        return await self._repository.list_for_owner(owner_id, limit=limit, skip=skip)

    async def publish(self, owner_id: UUID, object_id: UUID) -> StoredObject:
        """Give an object a public slug.

        Raises:
            ObjectNotFoundError: If the owner has no such object.
            ObjectAlreadyPublicError: If the object already has a slug.
        """
        obj = await self._repository.get(owner_id, object_id)
        if obj.is_public or obj.slug is not None:
            raise ObjectAlreadyPublicError(object_id)

        slug = make_slug(object_id)
        if not await self._repository.publish(object_id, slug):
            # Lost a race with a concurrent publish of the same object
            raise ObjectAlreadyPublicError(object_id)

        obj.slug = slug
        obj.is_public = True
        logger.info("published object %s as %s", object_id, slug)
        return obj

    async def delete(self, owner_id: UUID, object_ids: Sequence[UUID]) -> list[UUID]:
        """Delete objects: catalog rows first, then blobs, thumbnails and index documents.

        Storage cleanup is best-effort. A blob that survives is an orphan with
        no catalog row, which is never surfaced.
        """
        deleted = await self._repository.delete_many(owner_id, object_ids)

        for object_id in deleted:
            try:
                await self._blob_store.delete(owner_id, object_id)
            except BlobNotFoundError:
                pass
            except Exception:
                logger.exception("failed to delete blob for object %s", object_id)

            try:
                await self._thumbnails.evict(owner_id, object_id)
            except Exception:
                logger.exception("failed to delete thumbnail for object %s", object_id)

        if deleted:
            try:
                await self._search_index.delete(deleted)
            except Exception:
                logger.exception("failed to remove %d document(s) from the search index", len(deleted))

        logger.info("deleted %d object(s) for owner %s", len(deleted), owner_id)
        return deleted

    async def search(self, owner_id: UUID, query: str, *, offset: int = 0) -> list[StoredObject]:
        """Full-text search over OCR'd content, in index rank order."""
        ranked_ids = await self._search_index.query(
            owner_id, query, limit=settings.search_limit, offset=offset
        )
        rows = await self._repository.fetch_many(owner_id, ranked_ids)

        by_id = {row.object_id: row for row in rows}
        return [by_id[object_id] for object_id in ranked_ids if object_id in by_id]

    async def _read_blob(self, obj: StoredObject) -> bytes:
        try:
            return await self._blob_store.get(obj.owner_id, obj.object_id)
        except BlobNotFoundError as e:
            logger.error("object %s has a catalog row but no blob", obj.object_id)
            raise ObjectNotFoundError(obj.object_id) from e
