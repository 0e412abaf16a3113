"""Text recognition engine contract and Tesseract implementation."""

from __future__ import annotations

from typing import Protocol

import pytesseract
from PIL import Image


class TextRecognizer(Protocol):
    """Converts a decoded raster image into recognized lines of text.

    Implementations are synchronous and CPU-bound; callers run them off the
    event loop.
    """

    def recognize(self, image: Image.Image) -> list[str]:
        ...


class TesseractRecognizer:
    """Text recognizer backed by the ``tesseract`` binary via pytesseract."""

    def __init__(self, language: str = "eng", tesseract_cmd: str | None = None) -> None:
        self._language = language
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(self, image: Image.Image) -> list[str]:
        text = pytesseract.image_to_string(image, lang=self._language)
        return text.splitlines()
