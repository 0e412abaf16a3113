"""OCR text extraction from stored image blobs."""

from __future__ import annotations

import asyncio
import logging
import time

from object_vault.clients.ocr import TextRecognizer
from object_vault.config import settings
from object_vault.errors import ExtractionError
from object_vault.extraction.image import UndecodableImageError, decode_image

logger = logging.getLogger(__name__)


def join_lines(lines: list[str]) -> str:
    """Join recognized lines, dropping blank ones. Each kept line ends with a newline."""
    return "".join(f"{line}\n" for line in (raw.strip() for raw in lines) if line)


class TextExtractor:
    """Extract text from image bytes with a ``TextRecognizer``.

    Decoding and recognition run in a worker thread; both are CPU-bound.

    Usage:
        extractor = TextExtractor(TesseractRecognizer())
        text = await extractor.extract(image_bytes)
    """

    def __init__(self, recognizer: TextRecognizer) -> None:
        self._recognizer = recognizer

    def extract_sync(self, data: bytes) -> str:
        """Decode and OCR ``data``.

        Raises:
            ExtractionError: If the bytes cannot be decoded or recognition fails.
        """
        try:
            image = decode_image(data).convert("RGB")
        except UndecodableImageError as e:
            raise ExtractionError(f"Cannot decode image for OCR: {e}") from e

        try:
            lines = self._recognizer.recognize(image)
        except Exception as e:
            raise ExtractionError(f"Text recognition failed: {e}") from e

        return join_lines(lines)

    async def extract(self, data: bytes) -> str:
        start_time = time.time()
        text = await asyncio.to_thread(self.extract_sync, data)

        if settings.log_api_calls:
            elapsed = (time.time() - start_time) * 1000  # ms
            logger.info("[OCR] %d bytes → %d chars (%.0fms)", len(data), len(text), elapsed)

        return text
