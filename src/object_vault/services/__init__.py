"""Business logic services for ObjectVault."""

from object_vault.services.catalog import ObjectRepository, PendingObject, make_slug
from object_vault.services.indexing import IndexingReport, IndexingScheduler
from object_vault.services.ingest import UploadCoordinator, UploadSource
from object_vault.services.objects import ObjectService
from object_vault.services.thumbnails import ThumbnailCache

__all__ = [
    "IndexingReport",
    "IndexingScheduler",
    "ObjectRepository",
    "ObjectService",
    "PendingObject",
    "ThumbnailCache",
    "UploadCoordinator",
    "UploadSource",
    "make_slug",
]
