"""MIME sniffing for stored chat images."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

# Formats chat clients are allowed to send.
SUPPORTED = {"JPEG", "PNG", "GIF", "WEBP"}


class UnsupportedImageError(ValueError):
    pass


def image_mime(payload: bytes) -> str:
    """Return the MIME type of an image payload.

    Only the header is parsed; the pixel data is never decoded.
    """
    if not payload:
        raise UnsupportedImageError("empty payload")
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format
    except UnidentifiedImageError as e:
        raise UnsupportedImageError("image format not supported") from e
    if fmt not in SUPPORTED:
        raise UnsupportedImageError(f"image format not supported: {fmt}")
    return Image.MIME[fmt]
