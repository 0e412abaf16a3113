"""Background OCR indexing scheduler.

Every tick selects the objects whose flags say searchable-but-not-indexed,
extracts their text, writes it to the search index and ORs the INDEXED bit
onto their flags. A failure on one object leaves its flags untouched, so the
next tick picks it up again; it never blocks the other objects of the tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from object_vault.clients.blob_store import BlobStore
from object_vault.clients.search_index import SearchDocument, SearchIndex
from object_vault.config import settings
from object_vault.errors import InvariantViolation
from object_vault.extraction.text import TextExtractor
from object_vault.models import ObjectFlag, StoredObject, needs_indexing
from object_vault.services.catalog import ObjectRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

JOB_ID = "ocr-indexing"


def partition(items: list[T], workers: int) -> list[list[T]]:
    """Deal items round-robin into at most ``workers`` non-empty chunks."""
    workers = max(1, workers)
    return [chunk for chunk in (items[i::workers] for i in range(workers)) if chunk]


@dataclass
class IndexingReport:
    """Outcome of one scheduler tick."""

    selected: int = 0
    indexed: int = 0
    failed: int = 0


class IndexingScheduler:
    """Drive searchable objects through OCR into the search index.

    Usage:
        scheduler = IndexingScheduler(repository, blob_store, extractor, search_index)
        scheduler.start()           # periodic, every indexing_interval_seconds
        report = await scheduler.run_once()   # or a single tick on demand
    """

    def __init__(
        self,
        repository: ObjectRepository,
        blob_store: BlobStore,
        extractor: TextExtractor,
        search_index: SearchIndex,
        *,
        interval_seconds: int | None = None,
        workers: int | None = None,
    ) -> None:
        self._repository = repository
        self._blob_store = blob_store
        self._extractor = extractor
        self._search_index = search_index
        self._interval_seconds = interval_seconds or settings.indexing_interval_seconds
        self._workers = workers or settings.indexing_workers
        self._scheduler: AsyncIOScheduler | None = None
        self._active_tick: asyncio.Task[IndexingReport] | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Schedule the recurring tick on the running event loop. First tick runs now."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self._interval_seconds,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(UTC),
        )
        self._scheduler.start()
        logger.info("indexing scheduler started, interval %ds", self._interval_seconds)

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    async def stop(self) -> None:
        """Stop scheduling and wait for a tick that is still running."""
        self.shutdown()
        tick, self._active_tick = self._active_tick, None
        if tick is None or tick.done():
            return
        logger.info("waiting for the running indexing tick to finish")
        try:
            await tick
        except Exception:
            logger.exception("failed to run indexing tick")

    async def _tick(self) -> None:
        # Scheduler shutdown cancels _tick only; the tick itself runs on until stop() awaits it
        self._active_tick = asyncio.create_task(self.run_once())
        try:
            await asyncio.shield(self._active_tick)
        except Exception:
            logger.exception("failed to run indexing tick")

    async def run_once(self) -> IndexingReport:
        """Run one tick: select pending objects and index them.

        Raises:
            InvariantViolation: Never swallowed by per-object isolation.
        """
        start_time = time.perf_counter()
        objects = await self._repository.list_pending_index()
        report = IndexingReport(selected=len(objects))
        if not objects:
            return report

        chunks = partition(objects, self._workers)
        logger.info("need to OCR %d object(s), using %d worker(s)", len(objects), len(chunks))

        results = await asyncio.gather(*(self._process_chunk(chunk) for chunk in chunks))
        for indexed, failed in results:
            report.indexed += indexed
            report.failed += failed

        elapsed = (time.perf_counter() - start_time) * 1000  # ms
        logger.info(
            "indexing tick done: %d indexed, %d failed (%.0fms)",
            report.indexed, report.failed, elapsed,
        )
        return report

    async def _process_chunk(self, chunk: list[StoredObject]) -> tuple[int, int]:
        indexed = failed = 0
        for obj in chunk:
            try:
                if await self.index_object(obj):
                    indexed += 1
            except InvariantViolation:
                raise
            except Exception:
                failed += 1
                logger.exception("failed to index object %s, will retry next tick", obj.object_id)
        return indexed, failed

    async def index_object(self, obj: StoredObject) -> bool:
        """OCR one object and mark it indexed. Returns False if it was not eligible."""
        if not needs_indexing(obj.flags):
            return False

        data = await self._blob_store.get(obj.owner_id, obj.object_id)
        content = await self._extractor.extract(data)

        await self._search_index.upsert(
            SearchDocument(
                id=obj.object_id,
                owner_id=obj.owner_id,
                content=content,
                created_at=datetime.now(UTC),
            )
        )

        if not await self._repository.update_flags_or(obj.object_id, ObjectFlag.INDEXED):
            # Deleted mid-tick: drop the document that was just written
            logger.warning("object %s disappeared before it could be marked indexed", obj.object_id)
            await self._search_index.delete([obj.object_id])
            return False

        logger.debug("object %s has been processed with OCR", obj.object_id)
        return True
