"""Wiring of ObjectVault's collaborators.

``Services`` is built once per process (by the app lifespan or a CLI command)
and shared by request handlers and the indexing scheduler. Concurrency safety
comes from the repository's transactions, not from locks held here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from object_vault.clients.blob_store import THUMBNAIL_PREFIX, VAULT_PREFIX, BlobStore, S3BlobStore
from object_vault.clients.ocr import TesseractRecognizer
from object_vault.clients.search_index import MeiliSearchIndex, SearchIndex
from object_vault.config import settings
from object_vault.extraction.text import TextExtractor
from object_vault.services import (
    IndexingScheduler,
    ObjectRepository,
    ObjectService,
    ThumbnailCache,
    UploadCoordinator,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repository: ObjectRepository
    blob_store: BlobStore
    thumbnail_store: BlobStore
    search_index: SearchIndex
    ingest: UploadCoordinator
    thumbnails: ThumbnailCache
    objects: ObjectService
    indexing: IndexingScheduler

    @classmethod
    def create(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        blob_store: BlobStore,
        thumbnail_store: BlobStore,
        search_index: SearchIndex,
        extractor: TextExtractor,
    ) -> Services:
        repository = ObjectRepository(session_factory)
        thumbnails = ThumbnailCache(repository, blob_store, thumbnail_store)
        return cls(
            repository=repository,
            blob_store=blob_store,
            thumbnail_store=thumbnail_store,
            search_index=search_index,
            ingest=UploadCoordinator(repository, blob_store),
            thumbnails=thumbnails,
            objects=ObjectService(repository, blob_store, search_index, thumbnails),
            indexing=IndexingScheduler(repository, blob_store, extractor, search_index),
        )

    async def close(self) -> None:
        await self.indexing.stop()
        await self.ingest.drain()
        self.thumbnails.close()
        if isinstance(self.search_index, MeiliSearchIndex):
            await self.search_index.aclose()


def build_services() -> Services:
    """Production wiring from ``settings``: S3 blobs, Meilisearch, Tesseract."""
    from object_vault.db import async_session_factory

    return Services.create(
        async_session_factory,
        blob_store=S3BlobStore.from_settings(prefix=VAULT_PREFIX),
        thumbnail_store=S3BlobStore.from_settings(prefix=THUMBNAIL_PREFIX),
        search_index=MeiliSearchIndex.from_settings(),
        extractor=TextExtractor(
            TesseractRecognizer(settings.ocr_language, settings.tesseract_cmd)
        ),
    )


async def prepare_backends(services: Services) -> None:
    """Create the bucket and search index if they do not exist yet."""
    if isinstance(services.blob_store, S3BlobStore):
        await services.blob_store.ensure_bucket()
    if isinstance(services.search_index, MeiliSearchIndex):
        await services.search_index.ensure_index()
    logger.info("storage backends ready")
