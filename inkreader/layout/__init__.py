"""Page layout."""

from inkreader.layout.engine import LayoutEngine

__all__ = ["LayoutEngine"]
