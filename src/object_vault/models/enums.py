"""Enumerations for the ObjectVault data model."""

from enum import Enum, IntFlag


class ObjectFlag(IntFlag):
    """Processing bits stored in ``StoredObject.flags``.

    Flags are only ever added (bitwise OR), never cleared.
    """

    NONE = 0
    INDEXED = 1  # Text extracted and written to the search index
    SEARCHABLE = 2  # Content type is eligible for text extraction


class IndexState(str, Enum):
    """Indexing lifecycle of an object, derived from its flags."""

    RAW = "raw"  # Not searchable, never indexed (terminal)
    PENDING = "pending"  # Searchable, waiting for the indexing scheduler
    INDEXED = "indexed"  # Searchable and present in the search index
