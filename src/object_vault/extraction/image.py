"""Image decoding and thumbnail rendering.

Everything here is synchronous and CPU-bound. Services call these functions on
an executor, never directly on the event loop.
"""

from __future__ import annotations

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from object_vault.errors import ThumbnailUnavailableError

THUMBNAIL_FORMAT = "WEBP"
THUMBNAIL_CONTENT_TYPE = "image/webp"


class UndecodableImageError(ValueError):
    """The bytes are not an image Pillow can decode."""


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes into a fully loaded Pillow image.

    Raises:
        UndecodableImageError: If the bytes are not a supported image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise UndecodableImageError(str(e)) from e
    return img


def _to_webp_mode(img: Image.Image) -> Image.Image:
    """WebP stores RGB or RGBA only."""
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def render_thumbnail(data: bytes, *, size: int = 256, quality: float = 70.0) -> bytes:
    """Render a lossy WebP thumbnail that fills a ``size`` x ``size`` box.

    Pipeline:
    1. Decode the original (EXIF orientation applied)
    2. Fit into the box preserving aspect ratio, center-cropping the overflow
    3. Encode losslessly to WebP
    4. Re-decode and encode lossy WebP at ``quality``

    Output is deterministic for a given input, so a missing thumbnail can
    always be regenerated.

    Raises:
        ThumbnailUnavailableError: If any step fails.
    """
    try:
        src = decode_image(data)
    except UndecodableImageError as e:
        raise ThumbnailUnavailableError(f"Original is not a decodable image: {e}") from e

    try:
        src = ImageOps.exif_transpose(src)
        fitted = ImageOps.fit(_to_webp_mode(src), (size, size), method=Image.Resampling.LANCZOS)

        lossless = io.BytesIO()
        fitted.save(lossless, format=THUMBNAIL_FORMAT, lossless=True)

        intermediate = Image.open(io.BytesIO(lossless.getvalue()))
        out = io.BytesIO()
        intermediate.save(out, format=THUMBNAIL_FORMAT, quality=int(quality))
    except (OSError, ValueError) as e:
        raise ThumbnailUnavailableError(f"Thumbnail encoding failed: {e}") from e

    return out.getvalue()
