"""Page geometry and the positioned boxes produced by the layout engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from inkreader.exceptions import LayoutOverflow, ShapingFallbackExhausted
from inkreader.models.document import SpanStyle
from inkreader.models.text import ShapedGlyph


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero.

    Args:
        value: Value to round

    Returns:
        Rounded integer
    """
    if value >= 0:
        return int(value + 0.5)
    return -int(-value + 0.5)


@dataclass(frozen=True)
class Margins:
    """Page margins in logical units."""

    top: float = 100
    right: float = 100
    bottom: float = 100
    left: float = 100


@dataclass(frozen=True)
class PageGeometry:
    """Page size in device pixels plus typographic settings in logical units.

    Logical values are multiplied by ``dpi_scale`` and rounded half away from
    zero to get device pixels.
    """

    width: int
    height: int
    margins: Margins = Margins()
    base_font_size: float = 12
    dpi_scale: float = 2.0
    line_height: float = 1.2
    block_spacing: float = 12
    list_indent: float = 20

    def px(self, logical: float) -> int:
        return round_half_away(logical * self.dpi_scale)

    @property
    def content_left(self) -> int:
        return self.px(self.margins.left)

    @property
    def content_top(self) -> int:
        return self.px(self.margins.top)

    @property
    def content_width(self) -> int:
        return self.width - self.px(self.margins.left) - self.px(self.margins.right)

    @property
    def content_bottom(self) -> int:
        return self.height - self.px(self.margins.bottom)

    @property
    def content_height(self) -> int:
        return self.content_bottom - self.content_top


@dataclass(frozen=True)
class GlyphRun:
    """Glyphs of one style placed on a line, ``x`` relative to the line box."""

    x: int
    style: SpanStyle
    font_size: int
    glyphs: tuple[ShapedGlyph, ...]
    underline: bool = False


@dataclass(frozen=True)
class TextLine:
    """A single line of shaped text. ``baseline`` is measured from the box top."""

    runs: tuple[GlyphRun, ...]
    baseline: int


@dataclass(frozen=True)
class PlacedLine:
    """A text line offset inside a multi-line atomic box."""

    y: int
    line: TextLine


@dataclass(frozen=True)
class CodeBlockContent:
    lines: tuple[PlacedLine, ...]
    clipped: bool = False


@dataclass(frozen=True)
class TableCell:
    x: int
    width: int
    lines: tuple[PlacedLine, ...]


@dataclass(frozen=True)
class TableRowContent:
    cells: tuple[TableCell, ...]
    header: bool = False


@dataclass(frozen=True)
class ImageRef:
    """Reference to an image in the job's image store.

    ``placeholder`` is set when the image could not be resolved and a framed
    box with the alt text is drawn instead.
    """

    src: str
    alt: str = ""
    placeholder: bool = False
    alt_line: TextLine | None = None


@dataclass(frozen=True)
class Rule:
    """Filled horizontal rule; ``shade`` is the 8-bit gray level."""

    shade: int = 0


@dataclass(frozen=True)
class ProgressBar:
    page_number: int
    page_count: int


BoxContent = Union[TextLine, CodeBlockContent, TableRowContent, ImageRef, Rule, ProgressBar]


@dataclass(frozen=True)
class LayoutBox:
    page_index: int
    x: int
    y: int
    width: int
    height: int
    content: BoxContent

    @property
    def bottom(self) -> int:
        return self.y + self.height


@dataclass(frozen=True)
class Page:
    index: int
    boxes: tuple[LayoutBox, ...]


LayoutWarning = Union[LayoutOverflow, ShapingFallbackExhausted]


@dataclass(frozen=True)
class LayoutResult:
    pages: tuple[Page, ...]
    warnings: tuple[LayoutWarning, ...] = ()
