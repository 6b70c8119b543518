"""Page rasterization."""

from inkreader.rendering.images import ImageStore
from inkreader.rendering.rasterizer import Rasterizer

__all__ = ["ImageStore", "Rasterizer"]
