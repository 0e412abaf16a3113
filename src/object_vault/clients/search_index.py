"""Full-text search index contract and Meilisearch implementation."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from meilisearch_python_sdk import AsyncClient
from meilisearch_python_sdk.errors import MeilisearchApiError

from object_vault.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchDocument:
    """OCR text for one object, keyed by object id."""

    id: UUID
    owner_id: UUID
    content: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        # Meilisearch sorts numbers natively; store the timestamp as epoch seconds
        return {
            "id": str(self.id),
            "owner_id": str(self.owner_id),
            "content": self.content,
            "created_at": int(self.created_at.timestamp()),
        }


class SearchIndex(Protocol):
    """Full-text index filterable by owner and sortable by recency."""

    async def upsert(self, doc: SearchDocument) -> None:
        """Insert or replace the document with ``doc.id``."""
        ...

    async def query(self, owner_id: UUID, text: str, *, limit: int, offset: int = 0) -> list[UUID]:
        """Return matching object ids for ``owner_id``, newest first."""
        ...

    async def delete(self, ids: Sequence[UUID]) -> None:
        """Remove documents by object id. Missing ids are ignored."""
        ...


class MeiliSearchIndex:
    """Search index backed by a Meilisearch index (``objects_ocr`` by default).

    Usage:
        index = MeiliSearchIndex.from_settings()
        await index.ensure_index()
        await index.upsert(SearchDocument(...))
    """

    FILTERABLE_ATTRIBUTES = ["owner_id"]
    SORTABLE_ATTRIBUTES = ["created_at"]

    def __init__(self, client: AsyncClient, index_name: str) -> None:
        self._client = client
        self._index_name = index_name

    @classmethod
    def from_settings(cls) -> MeiliSearchIndex:
        client = AsyncClient(settings.meili_url, settings.meili_api_key)
        return cls(client, settings.meili_index)

    async def ensure_index(self) -> None:
        """Create the index if missing and configure filter/sort attributes."""
        try:
            index = await self._client.get_index(self._index_name)
        except MeilisearchApiError as e:
            if getattr(e, "code", None) != "index_not_found":
                raise
            logger.info("creating search index %s", self._index_name)
            index = await self._client.create_index(self._index_name, primary_key="id")

        await index.update_filterable_attributes(self.FILTERABLE_ATTRIBUTES)
        await index.update_sortable_attributes(self.SORTABLE_ATTRIBUTES)

    async def upsert(self, doc: SearchDocument) -> None:
        start_time = time.time()
        index = self._client.index(self._index_name)
        await index.add_documents([doc.to_dict()], primary_key="id")

        if settings.log_api_calls:
            elapsed = (time.time() - start_time) * 1000  # ms
            logger.info("[MEILI] upsert %s (%d chars, %.0fms)", doc.id, len(doc.content), elapsed)

    async def query(self, owner_id: UUID, text: str, *, limit: int, offset: int = 0) -> list[UUID]:
        index = self._client.index(self._index_name)
        results = await index.search(
            text,
            filter=f'owner_id = "{owner_id}"',
            limit=limit,
            offset=offset,
            sort=["created_at:desc"],
        )
        return [UUID(hit["id"]) for hit in results.hits]

    async def delete(self, ids: Sequence[UUID]) -> None:
        if not ids:
            return
        index = self._client.index(self._index_name)
        await index.delete_documents([str(i) for i in ids])

    async def aclose(self) -> None:
        await self._client.aclose()
