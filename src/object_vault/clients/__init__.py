"""Clients for the external services ObjectVault depends on."""

from object_vault.clients.blob_store import (
    THUMBNAIL_PREFIX,
    VAULT_PREFIX,
    BlobStore,
    S3BlobStore,
    blob_key,
)
from object_vault.clients.ocr import TesseractRecognizer, TextRecognizer
from object_vault.clients.search_index import MeiliSearchIndex, SearchDocument, SearchIndex

__all__ = [
    "THUMBNAIL_PREFIX",
    "VAULT_PREFIX",
    "BlobStore",
    "MeiliSearchIndex",
    "S3BlobStore",
    "SearchDocument",
    "SearchIndex",
    "TesseractRecognizer",
    "TextRecognizer",
    "blob_key",
]
