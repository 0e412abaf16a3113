"""Database models for ObjectVault."""

from object_vault.models.base import Base
from object_vault.models.enums import IndexState, ObjectFlag
from object_vault.models.flags import (
    SEARCHABLE_CONTENT_TYPES,
    index_state,
    initial_flags,
    needs_indexing,
    with_flags,
)
from object_vault.models.object import StoredObject

__all__ = [
    "Base",
    "IndexState",
    "ObjectFlag",
    "SEARCHABLE_CONTENT_TYPES",
    "StoredObject",
    "index_state",
    "initial_flags",
    "needs_indexing",
    "with_flags",
]
