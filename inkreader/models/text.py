"""Shaped text values produced by the text shaper."""

from __future__ import annotations

from dataclasses import dataclass

TOFU_GLYPH_ID = 0
TOFU_FACE = ""


@dataclass(frozen=True)
class ShapedGlyph:
    """One positioned glyph.

    ``face`` names the cascade face that supplied the glyph; it is empty for
    the placeholder glyph drawn when no face covers ``char``.
    """

    glyph_id: int
    advance: float
    x_offset: float
    y_offset: float
    char: str
    face: str

    @property
    def is_tofu(self) -> bool:
        return self.face == TOFU_FACE


@dataclass(frozen=True)
class ShapedRun:
    """Glyphs for a text run in one style and size."""

    glyphs: tuple[ShapedGlyph, ...]
    width: float
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class FontMetrics:
    """Vertical metrics of a style at a pixel size."""

    ascent: int
    descent: int

    @property
    def height(self) -> int:
        return self.ascent + self.descent
