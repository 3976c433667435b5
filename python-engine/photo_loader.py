"""Decode field photos into flat RGBA pixel buffers.

Photos are squashed to a small square before analysis; index math
runs on tens of thousands of pixels, not the full camera frame.
"""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

DEFAULT_TARGET_SIZE = 200
THUMBNAIL_QUALITY = 70

PhotoSource = Union[str, Path, bytes, BinaryIO]


def _open(source: PhotoSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    image = Image.open(source)
    image.load()
    return image


def load_pixel_buffer(
    source: PhotoSource,
    target_size: int = DEFAULT_TARGET_SIZE,
) -> np.ndarray:
    """Decode a photo and downsample it to a flat RGBA buffer.

    Args:
        source: File path, raw bytes, or a binary file object.
        target_size: Edge length of the square the photo is resized to.

    Returns:
        ``uint8`` array of length ``target_size * target_size * 4``.

    Raises:
        OSError: If the file cannot be read.
        PIL.UnidentifiedImageError: If the data is not a known image format.
    """
    with _open(source) as image:
        logger.debug("Decoded %s photo %dx%d", image.format, *image.size)
        rgba = image.convert("RGBA").resize((target_size, target_size))
    return np.asarray(rgba, dtype=np.uint8).reshape(-1)


def photo_data_uri(
    source: PhotoSource,
    target_size: int = DEFAULT_TARGET_SIZE,
) -> str:
    """Small JPEG thumbnail of the photo as a ``data:`` URI."""
    with _open(source) as image:
        thumb = image.convert("RGB").resize((target_size, target_size))
    buffer = io.BytesIO()
    thumb.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"
