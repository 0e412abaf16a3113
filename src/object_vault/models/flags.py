"""Flag state machine for object indexing.

All interpretation of the ``flags`` bit field lives here. The repository only
translates these predicates into SQL; no other module does bit arithmetic.

    RAW ──(terminal)
    PENDING ──(scheduler: OCR + index + flag update)──> INDEXED
"""

from __future__ import annotations

from typing import Final

from object_vault.models.enums import IndexState, ObjectFlag

# Content types the OCR pipeline can decode
SEARCHABLE_CONTENT_TYPES: Final[frozenset[str]] = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
    }
)


def initial_flags(content_type: str) -> ObjectFlag:
    """Compute the flags for a freshly ingested object."""
    if content_type.strip().lower() in SEARCHABLE_CONTENT_TYPES:
        return ObjectFlag.SEARCHABLE
    return ObjectFlag.NONE


def index_state(flags: int) -> IndexState:
    """Derive the indexing state from a raw flags value."""
    bits = ObjectFlag(flags)
    if ObjectFlag.SEARCHABLE not in bits:
        return IndexState.RAW
    if ObjectFlag.INDEXED in bits:
        return IndexState.INDEXED
    return IndexState.PENDING


def needs_indexing(flags: int) -> bool:
    """Whether the indexing scheduler should process an object with these flags."""
    return index_state(flags) is IndexState.PENDING


def with_flags(flags: int, bits: ObjectFlag) -> int:
    """Return ``flags`` with ``bits`` added. Flags never decrease."""
    return int(ObjectFlag(flags) | bits)
