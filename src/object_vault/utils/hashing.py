"""Streaming content hashing for deduplication."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import BinaryIO, Final

# Fixed read size; memory use is independent of input size
CHUNK_SIZE: Final[int] = 8192


@dataclass(frozen=True)
class ContentDigest:
    """SHA-256 digest of a byte stream plus the number of bytes read."""

    hexdigest: str
    size: int


def hash_stream(stream: BinaryIO, *, chunk_size: int = CHUNK_SIZE) -> ContentDigest:
    """Hash a readable binary stream from its current position to EOF.

    The stream is left at EOF; callers that need the bytes again must seek.
    I/O errors from the stream propagate unchanged.
    """
    hasher = hashlib.sha256()
    size = 0
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        hasher.update(chunk)
        size += len(chunk)
    return ContentDigest(hexdigest=hasher.hexdigest(), size=size)


def hash_bytes(data: bytes) -> str:
    """Hex SHA-256 of an in-memory buffer."""
    return hashlib.sha256(data).hexdigest()
