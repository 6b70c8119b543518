"""Image decoding and scaling for page rasterization."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import threading
from collections.abc import Mapping
from typing import Optional
from urllib.parse import unquote_to_bytes

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def to_grayscale(image: Image.Image) -> Image.Image:
    """Convert an image to 8-bit grayscale, flattening transparency onto white.

    Args:
        image: Decoded image in any mode

    Returns:
        Image in mode "L"
    """
    if image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(background, rgba).convert("L")
    return image.convert("L")


def resize_image_for_box(image: Image.Image, width: int, height: int) -> Image.Image:
    """Fit an image inside a box, preserving aspect ratio and never upscaling.

    Args:
        image: Grayscale source image
        width: Box width
        height: Box height

    Returns:
        Box-sized grayscale image with the scaled source centered on white
    """
    img_width, img_height = image.size
    ratio = min(width / img_width, height / img_height, 1.0)
    new_width = max(1, int(img_width * ratio))
    new_height = max(1, int(img_height * ratio))

    if (new_width, new_height) != image.size:
        image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    boxed = Image.new("L", (width, height), 255)
    boxed.paste(image, ((width - new_width) // 2, (height - new_height) // 2))
    return boxed


def decode_data_uri(uri: str) -> Optional[bytes]:
    """Return the payload of a ``data:`` URI, or None if it is malformed."""
    header, sep, payload = uri.partition(",")
    if not sep or not header.lower().startswith("data:"):
        return None
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError):
            return None
    return unquote_to_bytes(payload)


class ImageStore:
    """Decoded images available to one render job, keyed by source URL.

    ``data:`` URIs are decoded on first use; other sources must be supplied
    up front as raw bytes.
    """

    def __init__(self, sources: Optional[Mapping[str, bytes]] = None) -> None:
        self._images: dict[str, Optional[Image.Image]] = {}
        self._lock = threading.Lock()
        for src, data in (sources or {}).items():
            self._images[src] = self._decode(src, data)

    @staticmethod
    def _decode(src: str, data: bytes) -> Optional[Image.Image]:
        try:
            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                return to_grayscale(opened)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning("Could not decode image %s: %s", src[:120], e)
            return None

    def get(self, src: str) -> Optional[Image.Image]:
        """Return the decoded grayscale image for a source, if available."""
        with self._lock:
            if src in self._images:
                return self._images[src]
            image = None
            if src.lower().startswith("data:"):
                data = decode_data_uri(src)
                image = self._decode(src, data) if data is not None else None
            self._images[src] = image
            return image

    def size(self, src: str) -> Optional[tuple[int, int]]:
        image = self.get(src)
        return image.size if image is not None else None

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for image in self._images.values() if image is not None)
