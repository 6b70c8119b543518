"""Rasterized pixel surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from PIL import Image


class ColorDepth(Enum):
    """Supported output color depths."""

    ONE_BIT = 1
    GRAYSCALE_8 = 8

    @property
    def pil_mode(self) -> str:
        return "1" if self is ColorDepth.ONE_BIT else "L"


@dataclass(frozen=True)
class SurfaceSpec:
    """Target dimensions and depth for rasterization."""

    width: int
    height: int
    depth: ColorDepth = ColorDepth.ONE_BIT


@dataclass(frozen=True)
class PixelSurface:
    """Immutable pixel buffer.

    One-bit buffers use Pillow's mode "1" packing: rows padded to whole bytes,
    most significant bit first, set bit is white.
    """

    width: int
    height: int
    depth: ColorDepth
    data: bytes

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelSurface":
        """Build a surface from a Pillow image in mode "1" or "L".

        Args:
            image: Source image

        Returns:
            PixelSurface with a copy of the pixel data

        Raises:
            ValueError: If the image mode is not supported
        """
        if image.mode == "1":
            depth = ColorDepth.ONE_BIT
        elif image.mode == "L":
            depth = ColorDepth.GRAYSCALE_8
        else:
            raise ValueError(f"Unsupported image mode: {image.mode}")
        return cls(width=image.width, height=image.height, depth=depth, data=image.tobytes())

    @property
    def spec(self) -> SurfaceSpec:
        return SurfaceSpec(self.width, self.height, self.depth)

    def to_image(self) -> Image.Image:
        return Image.frombytes(self.depth.pil_mode, (self.width, self.height), self.data)

    def to_grayscale(self) -> Image.Image:
        """Return the surface as an 8-bit grayscale image."""
        return self.to_image().convert("L")
