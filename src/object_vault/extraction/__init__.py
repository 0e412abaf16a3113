"""Image processing and text extraction.

Main entry points:
    from object_vault.extraction import TextExtractor, render_thumbnail

    text = await TextExtractor(recognizer).extract(image_bytes)
    webp = render_thumbnail(image_bytes, size=256, quality=70)
"""

from object_vault.extraction.image import (
    THUMBNAIL_CONTENT_TYPE,
    UndecodableImageError,
    decode_image,
    render_thumbnail,
)
from object_vault.extraction.text import TextExtractor, join_lines

__all__ = [
    "THUMBNAIL_CONTENT_TYPE",
    "TextExtractor",
    "UndecodableImageError",
    "decode_image",
    "join_lines",
    "render_thumbnail",
]
