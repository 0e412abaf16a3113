"""Content type probing.

Uploads over HTTP carry a declared content type; files ingested from disk do
not. This module sniffs a MIME type from magic bytes, falling back to the
file extension, so disk ingestion assigns the same flags an upload would.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Final

DEFAULT_CONTENT_TYPE: Final[str] = "application/octet-stream"

# Magic byte signatures: (magic_bytes, offset, content_type)
_MAGIC_SIGNATURES: Final[list[tuple[bytes, int, str]]] = [
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"GIF87a", 0, "image/gif"),
    (b"GIF89a", 0, "image/gif"),
    (b"BM", 0, "image/bmp"),
    (b"II*\x00", 0, "image/tiff"),  # TIFF little-endian
    (b"MM\x00*", 0, "image/tiff"),  # TIFF big-endian
    (b"%PDF-", 0, "application/pdf"),
    (b"PK\x03\x04", 0, "application/zip"),
    (b"\x1aE\xdf\xa3", 0, "video/webm"),
    (b"ID3", 0, "audio/mpeg"),
    (b"fLaC", 0, "audio/flac"),
    (b"OggS", 0, "audio/ogg"),
]

# RIFF container subtypes, at bytes 8..12
_RIFF_TYPES: Final[dict[bytes, str]] = {
    b"WEBP": "image/webp",
    b"WAVE": "audio/wav",
    b"AVI ": "video/x-msvideo",
}

# Minimum bytes needed for reliable magic byte detection
PROBE_HEADER_SIZE: Final[int] = 32


def probe_content_type(header: bytes, *, filename: str | None = None) -> str:
    """Detect a MIME type from the first bytes of a file.

    Detection strategy (in priority order):
    1. Magic bytes
    2. Filename extension via ``mimetypes``
    3. ``application/octet-stream``
    """
    if header:
        detected = _detect_by_magic(header)
        if detected is not None:
            return detected

    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed

    return DEFAULT_CONTENT_TYPE


def probe_content_type_from_path(path: str | Path) -> str:
    """Detect the MIME type of a file on disk, reading only its header."""
    path = Path(path)
    with path.open("rb") as f:
        header = f.read(PROBE_HEADER_SIZE)
    return probe_content_type(header, filename=path.name)


def is_image(content_type: str) -> bool:
    """Whether the content type names a raster/vector image."""
    return content_type.strip().lower().startswith("image/")


def _detect_by_magic(data: bytes) -> str | None:
    if data.startswith(b"RIFF") and len(data) >= 12:
        return _RIFF_TYPES.get(data[8:12])

    for magic, offset, content_type in _MAGIC_SIGNATURES:
        if data[offset : offset + len(magic)] == magic:
            return content_type

    return None
