"""Tests for the thumbnail cache."""

from __future__ import annotations

import io
from uuid import uuid4

import pytest
from PIL import Image

import object_vault.services.thumbnails as thumbnails_module
from conftest import OTHER_OWNER_ID, OWNER_ID, MemoryBlobStore, create_test_image, upload
from object_vault.errors import ObjectNotFoundError, StorageError, ThumbnailUnavailableError
from object_vault.models import StoredObject
from object_vault.state import Services


@pytest.fixture
def render_calls(monkeypatch: pytest.MonkeyPatch) -> list[bytes]:
    """Record every render while still rendering for real."""
    calls: list[bytes] = []
    real_render = thumbnails_module.render_thumbnail

    def counting_render(data: bytes, **kwargs) -> bytes:
        calls.append(data)
        return real_render(data, **kwargs)

    monkeypatch.setattr(thumbnails_module, "render_thumbnail", counting_render)
    return calls


async def ingest_one(services: Services, data: bytes, content_type: str = "image/png") -> StoredObject:
    created = await services.ingest.ingest(OWNER_ID, [upload(data, content_type=content_type)])
    return created[0]


class TestThumbnailFor:
    async def test_renders_and_persists(
        self, services: Services, thumbnail_store: MemoryBlobStore
    ) -> None:
        obj = await ingest_one(services, create_test_image(size=(640, 320)))

        data = await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)

        img = Image.open(io.BytesIO(data))
        assert img.format == "WEBP"
        assert img.size == (256, 256)
        stored, content_type = thumbnail_store.blobs[thumbnail_store.key(OWNER_ID, obj.object_id)]
        assert stored == data
        assert content_type == "image/webp"

    async def test_second_call_is_cache_hit(
        self, services: Services, render_calls: list[bytes]
    ) -> None:
        obj = await ingest_one(services, create_test_image())

        first = await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)
        second = await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)

        assert first == second
        assert len(render_calls) == 1

    async def test_non_image_unavailable(
        self, services: Services, thumbnail_store: MemoryBlobStore
    ) -> None:
        obj = await ingest_one(services, b"%PDF-1.7", content_type="application/pdf")

        with pytest.raises(ThumbnailUnavailableError):
            await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)
        assert thumbnail_store.blobs == {}

    async def test_undecodable_image_writes_no_entry(
        self, services: Services, thumbnail_store: MemoryBlobStore
    ) -> None:
        obj = await ingest_one(services, b"definitely not a png", content_type="image/png")

        with pytest.raises(ThumbnailUnavailableError):
            await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)
        assert thumbnail_store.blobs == {}

    async def test_unknown_or_foreign_object(self, services: Services) -> None:
        obj = await ingest_one(services, create_test_image())

        with pytest.raises(ObjectNotFoundError):
            await services.thumbnails.thumbnail_for(OTHER_OWNER_ID, obj.object_id)
        with pytest.raises(ObjectNotFoundError):
            await services.thumbnails.thumbnail_for(OWNER_ID, uuid4())

    async def test_missing_original_reads_as_not_found(
        self, services: Services, blob_store: MemoryBlobStore, thumbnail_store: MemoryBlobStore
    ) -> None:
        obj = await ingest_one(services, create_test_image())
        blob_store.blobs.clear()

        with pytest.raises(ObjectNotFoundError):
            await services.thumbnails.thumbnail_for(OWNER_ID, obj.object_id)
        assert thumbnail_store.blobs == {}


class TestGetThumbnail:
    async def test_persist_failure_still_returns_bytes(
        self, services: Services, thumbnail_store: MemoryBlobStore
    ) -> None:
        thumbnail_store.fail_put_when = lambda content: True
        original = create_test_image()

        async def fetch_original() -> bytes:
            return original

        data = await services.thumbnails.get_thumbnail(OWNER_ID, uuid4(), fetch_original)

        assert Image.open(io.BytesIO(data)).size == (256, 256)
        assert thumbnail_store.blobs == {}

    async def test_lookup_failure_renders_instead(
        self, services: Services, thumbnail_store: MemoryBlobStore, render_calls: list[bytes]
    ) -> None:
        thumbnail_store.fail_get = True
        original = create_test_image()

        async def fetch_original() -> bytes:
            return original

        data = await services.thumbnails.get_thumbnail(OWNER_ID, uuid4(), fetch_original)

        assert data
        assert render_calls == [original]

    async def test_missing_original_propagates(self, services: Services) -> None:
        async def fetch_original() -> bytes:
            raise StorageError("gone")

        with pytest.raises(StorageError):
            await services.thumbnails.get_thumbnail(OWNER_ID, uuid4(), fetch_original)

    async def test_evict_ignores_missing(self, services: Services) -> None:
        await services.thumbnails.evict(OWNER_ID, uuid4())
