"""Shared pytest fixtures for ObjectVault tests."""

from __future__ import annotations

import asyncio
import io
from collections.abc import AsyncGenerator, Callable, Sequence
from typing import TYPE_CHECKING, BinaryIO
from uuid import UUID, uuid4

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from object_vault.clients.blob_store import VAULT_PREFIX, blob_key
from object_vault.clients.search_index import SearchDocument
from object_vault.errors import BlobNotFoundError, StorageError
from object_vault.extraction.text import TextExtractor
from object_vault.models import Base
from object_vault.services.catalog import ObjectRepository, PendingObject
from object_vault.services.ingest import UploadSource
from object_vault.state import Services
from object_vault.utils.hashing import hash_bytes

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage
    from sqlalchemy.ext.asyncio import AsyncEngine


OWNER_ID = UUID("6f1c2b0e-8a7d-4c3e-9b5a-1d2e3f4a5b6c")
OTHER_OWNER_ID = UUID("0a9b8c7d-6e5f-4a3b-8c2d-1e0f9a8b7c6d")

RECOGNIZED_LINES = ["  HELLO WORLD  ", "", "   ", "receipt total 42"]
RECOGNIZED_TEXT = "HELLO WORLD\nreceipt total 42\n"


def create_test_image(
    color: tuple[int, int, int] = (255, 0, 0),
    size: tuple[int, int] = (64, 48),
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    """Create a solid-color test image in memory."""
    img: PILImage = Image.new(mode, size, color if mode == "RGB" else color + (128,))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def upload(
    data: bytes,
    content_type: str | None = "image/png",
    file_name: str | None = "upload.png",
) -> UploadSource:
    return UploadSource(stream=io.BytesIO(data), content_type=content_type, file_name=file_name)


class MemoryBlobStore:
    """In-memory BlobStore with failure injection."""

    def __init__(self, prefix: str = VAULT_PREFIX) -> None:
        self.prefix = prefix
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.fail_put_when: Callable[[bytes], bool] | None = None
        self.fail_get = False
        self.put_gate: asyncio.Event | None = None
        self.put_calls = 0
        self.delete_calls = 0

    def key(self, owner_id: UUID, object_id: UUID) -> str:
        return blob_key(self.prefix, owner_id, object_id)

    async def put(
        self,
        owner_id: UUID,
        object_id: UUID,
        data: BinaryIO,
        length: int,
        content_type: str,
    ) -> int:
        self.put_calls += 1
        if self.put_gate is not None:
            await self.put_gate.wait()
        content = data.read(length)
        if self.fail_put_when is not None and self.fail_put_when(content):
            raise StorageError("injected put failure")
        self.blobs[self.key(owner_id, object_id)] = (content, content_type)
        return len(content)

    async def get(self, owner_id: UUID, object_id: UUID) -> bytes:
        if self.fail_get:
            raise StorageError("injected get failure")
        key = self.key(owner_id, object_id)
        if key not in self.blobs:
            raise BlobNotFoundError(key)
        return self.blobs[key][0]

    async def delete(self, owner_id: UUID, object_id: UUID) -> None:
        self.delete_calls += 1
        key = self.key(owner_id, object_id)
        if key not in self.blobs:
            raise BlobNotFoundError(key)
        del self.blobs[key]


class FakeSearchIndex:
    """In-memory SearchIndex: case-insensitive substring match, newest first."""

    def __init__(self) -> None:
        self.documents: dict[UUID, SearchDocument] = {}

    async def upsert(self, doc: SearchDocument) -> None:
        self.documents[doc.id] = doc

    async def query(self, owner_id: UUID, text: str, *, limit: int, offset: int = 0) -> list[UUID]:
        needle = text.lower()
        hits = [
            doc
            for doc in self.documents.values()
            if doc.owner_id == owner_id and needle in doc.content.lower()
        ]
        hits.sort(key=lambda doc: doc.created_at, reverse=True)
        return [doc.id for doc in hits[offset : offset + limit]]

    async def delete(self, ids: Sequence[UUID]) -> None:
        for object_id in ids:
            self.documents.pop(object_id, None)


class FakeRecognizer:
    """TextRecognizer returning fixed lines."""

    def __init__(self, lines: list[str] | None = None) -> None:
        self.lines = RECOGNIZED_LINES if lines is None else lines
        self.calls = 0

    def recognize(self, image: PILImage) -> list[str]:
        self.calls += 1
        return list(self.lines)


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> ObjectRepository:
    return ObjectRepository(session_factory)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def thumbnail_store() -> MemoryBlobStore:
    return MemoryBlobStore(prefix="thumbnails")


@pytest.fixture
def search_index() -> FakeSearchIndex:
    return FakeSearchIndex()


@pytest.fixture
def recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
async def services(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: MemoryBlobStore,
    thumbnail_store: MemoryBlobStore,
    search_index: FakeSearchIndex,
    recognizer: FakeRecognizer,
) -> AsyncGenerator[Services, None]:
    """Fully wired services over SQLite and in-memory backends."""
    services = Services.create(
        session_factory,
        blob_store=blob_store,
        thumbnail_store=thumbnail_store,
        search_index=search_index,
        extractor=TextExtractor(recognizer),
    )
    yield services
    await services.close()


# Type alias for factory fixture
MakePending = Callable[..., PendingObject]


@pytest.fixture
def make_pending() -> MakePending:
    """Factory fixture for creating PendingObject instances."""

    def _make(
        *,
        object_id: UUID | None = None,
        owner_id: UUID = OWNER_ID,
        content_type: str = "image/png",
        content: bytes | None = None,
        file_name: str = "test.png",
    ) -> PendingObject:
        content = content if content is not None else uuid4().bytes
        return PendingObject(
            object_id=object_id or uuid4(),
            owner_id=owner_id,
            content_type=content_type,
            content_size=len(content),
            file_name=file_name,
            content_hash=hash_bytes(content),
        )

    return _make
