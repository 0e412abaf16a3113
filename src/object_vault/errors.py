"""Exception taxonomy for ObjectVault.

- Transient I/O failures (``StorageError`` and client errors) are recovered per
  file or per object by the ingest and indexing pipelines.
- ``IngestError`` signals a failed batch commit; the batch's blobs have been
  compensated by the time it is raised.
- Content failures (``ThumbnailUnavailableError``, ``ExtractionError``) mean the
  object cannot be rendered or read, not that the system is unhealthy.
- ``InvariantViolation`` is a programming error and is never swallowed.
"""

from __future__ import annotations

from uuid import UUID


class ObjectVaultError(Exception):
    """Base class for ObjectVault errors."""


class StorageError(ObjectVaultError):
    """The blob store rejected or failed an operation."""


class BlobNotFoundError(StorageError):
    """No blob exists at the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Blob not found: {key}")
        self.key = key


class ObjectNotFoundError(ObjectVaultError):
    """No catalog row matches the requested owner/id or slug."""

    def __init__(self, ref: UUID | str) -> None:
        super().__init__(f"Object not found: {ref}")
        self.ref = ref


class ObjectAlreadyPublicError(ObjectVaultError):
    """The object already has a slug; slugs are immutable."""

    def __init__(self, object_id: UUID) -> None:
        super().__init__(f"Object {object_id} is already public")
        self.object_id = object_id


class ThumbnailUnavailableError(ObjectVaultError):
    """No thumbnail can be produced for the object."""


class ExtractionError(ObjectVaultError):
    """Text extraction failed (typically undecodable image input)."""


class IngestError(ObjectVaultError):
    """The metadata commit for an upload batch failed."""


class InvariantViolation(ObjectVaultError):
    """A programming invariant does not hold. Abort loudly."""
