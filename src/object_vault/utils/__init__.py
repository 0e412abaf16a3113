"""Utility modules for ObjectVault."""

from object_vault.utils.content_type import (
    DEFAULT_CONTENT_TYPE,
    is_image,
    probe_content_type,
    probe_content_type_from_path,
)
from object_vault.utils.hashing import ContentDigest, hash_bytes, hash_stream

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "ContentDigest",
    "hash_bytes",
    "hash_stream",
    "is_image",
    "probe_content_type",
    "probe_content_type_from_path",
]
