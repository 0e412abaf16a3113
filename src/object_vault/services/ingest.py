"""Upload coordinator: dedup, blob persistence and atomic catalog commit.

An ingest call processes a batch of files:
1. Per file, concurrently: hash, dedup against the owner's catalog, upload the
   raw bytes under a fresh object id. A failing file is logged and dropped.
2. One transaction inserts a row for every uploaded file.
3. If the call exits without that transaction committing, every blob it
   uploaded is deleted again, so a failed ingest never leaves orphans behind.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import BinaryIO
from uuid import UUID, uuid4

from object_vault.clients.blob_store import BlobStore
from object_vault.errors import IngestError, InvariantViolation
from object_vault.models import StoredObject
from object_vault.services.catalog import ObjectRepository, PendingObject
from object_vault.utils.content_type import DEFAULT_CONTENT_TYPE
from object_vault.utils.hashing import ContentDigest, hash_stream

logger = logging.getLogger(__name__)


@dataclass
class UploadSource:
    """One file of an upload batch.

    ``stream`` must be seekable; it is read twice (hash, then upload).
    """

    stream: BinaryIO
    content_type: str | None = None
    file_name: str | None = None


def default_file_name(object_id: UUID) -> str:
    return f"{str(object_id)[:12]}_no_file_name"


def _digest_and_rewind(stream: BinaryIO) -> ContentDigest:
    start = stream.tell()
    digest = hash_stream(stream)
    stream.seek(start)
    return digest


class _UploadBatch:
    """Per-call accumulator of uploaded-but-uncommitted blobs.

    The lock covers only the bookkeeping; hashing and uploads run outside it.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._pending: list[PendingObject] = []
        self._claimed: set[str] = set()

    async def claim(self, content_hash: str) -> bool:
        """Reserve a hash for this batch. False if a sibling file already holds it."""
        async with self._lock:
            if content_hash in self._claimed:
                return False
            self._claimed.add(content_hash)
            return True

    async def add(self, item: PendingObject) -> None:
        async with self._lock:
            self._pending.append(item)

    def snapshot(self) -> list[PendingObject]:
        return list(self._pending)


class UploadCoordinator:
    """Ingest batches of files into the blob store and the catalog.

    Usage:
        coordinator = UploadCoordinator(repository, blob_store)
        created = await coordinator.ingest(owner_id, [UploadSource(f, "image/png", "a.png")])
    """

    def __init__(self, repository: ObjectRepository, blob_store: BlobStore) -> None:
        self._repository = repository
        self._blob_store = blob_store
        self._inflight: set[asyncio.Task[list[StoredObject]]] = set()

    async def ingest(self, owner_id: UUID, files: Sequence[UploadSource]) -> list[StoredObject]:
        """Ingest a batch and return the newly created rows.

        Duplicates (of existing objects or of siblings in the same batch) and
        files that fail are absent from the result. The work runs in its own
        task, shielded from the caller: if the caller is cancelled (e.g. the
        client disconnects) uploads and the commit still run to completion.

        Args:
            owner_id: Owner of every file in the batch.
            files: Open streams with their declared content type and name.

        Returns:
            Rows created by this call. Empty if every file was a duplicate.

        Raises:
            IngestError: If the catalog commit failed. Uploaded blobs have
                already been deleted.
            InvariantViolation: If a pending row does not belong to ``owner_id``.
        """
        task = asyncio.create_task(self._ingest(owner_id, list(files)))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for ingest calls that outlived their callers."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _ingest(self, owner_id: UUID, files: list[UploadSource]) -> list[StoredObject]:
        start_time = time.perf_counter()
        batch = _UploadBatch()
        committed = False
        try:
            await asyncio.gather(*(self._process_file(owner_id, source, batch) for source in files))

            pending = batch.snapshot()
            try:
                created = await self._repository.insert_many(owner_id, pending)
            except InvariantViolation:
                raise
            except Exception as e:
                msg = f"Failed to commit {len(pending)} object(s) for owner {owner_id}"
                raise IngestError(msg) from e
            committed = True
        finally:
            if not committed:
                await self._compensate(owner_id, batch.snapshot())

        elapsed = (time.perf_counter() - start_time) * 1000  # ms
        logger.info(
            "created %d object(s) from %d file(s) for owner %s (%.0fms)",
            len(created), len(files), owner_id, elapsed,
        )
        return created

    async def _process_file(self, owner_id: UUID, source: UploadSource, batch: _UploadBatch) -> None:
        label = source.file_name or "<unnamed>"
        try:
            digest = await asyncio.to_thread(_digest_and_rewind, source.stream)

            if not await batch.claim(digest.hexdigest):
                logger.debug("skipping %s, hash %s repeated within batch", label, digest.hexdigest)
                return
            if await self._repository.find_by_hash(owner_id, digest.hexdigest):
                logger.debug("skipping %s, hash %s already stored", label, digest.hexdigest)
                return

            object_id = uuid4()
            content_type = source.content_type or DEFAULT_CONTENT_TYPE
            size = await self._blob_store.put(
                owner_id, object_id, source.stream, digest.size, content_type
            )

            await batch.add(
                PendingObject(
                    object_id=object_id,
                    owner_id=owner_id,
                    content_type=content_type,
                    content_size=size,
                    file_name=source.file_name or default_file_name(object_id),
                    content_hash=digest.hexdigest,
                )
            )
            logger.debug("uploaded %s as %s (%d bytes)", label, object_id, size)
        except Exception:
            logger.exception("failed to process upload %s, dropping it from the batch", label)

    async def _compensate(self, owner_id: UUID, uploaded: list[PendingObject]) -> None:
        """Best-effort deletion of blobs from an uncommitted batch."""
        if not uploaded:
            return

        logger.warning(
            "ingest for owner %s did not commit, deleting %d uploaded blob(s)",
            owner_id, len(uploaded),
        )
        results = await asyncio.gather(
            *(self._blob_store.delete(owner_id, item.object_id) for item in uploaded),
            return_exceptions=True,
        )
        for item, result in zip(uploaded, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("failed to delete orphaned blob %s: %s", item.object_id, result)
