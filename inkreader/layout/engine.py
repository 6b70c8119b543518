"""Block-flow layout of a document tree into fixed-size pages.

Text blocks are broken into lines greedily and lines flow freely across page
boundaries. Code blocks, images, rules and table rows are atomic: they move to
the next page as a whole and are shrunk when even an empty page is too short.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from inkreader.exceptions import LayoutOverflow, ShapingFallbackExhausted
from inkreader.models.document import (
    BlockQuote,
    CodeBlock,
    Document,
    DocumentNode,
    Heading,
    Image,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Run,
    SpanStyle,
    Table,
    TextSpan,
    ThematicBreak,
)
from inkreader.models.layout import (
    BoxContent,
    CodeBlockContent,
    GlyphRun,
    ImageRef,
    LayoutBox,
    LayoutResult,
    Page,
    PageGeometry,
    PlacedLine,
    ProgressBar,
    Rule,
    TableCell,
    TableRowContent,
    TextLine,
    round_half_away,
)
from inkreader.text.shaper import TextShaper

logger = logging.getLogger(__name__)

HEADING_SCALES = {1: 2.0, 2: 1.5, 3: 1.25}

# Logical units, multiplied by the DPI scale like everything else
PLACEHOLDER_SIZE = 150
CODE_PADDING = 4
CELL_PADDING = 4
RULE_THICKNESS = 1
FOOTER_MARGIN = 40
FOOTER_BAR_WIDTH = 160
FOOTER_BAR_HEIGHT = 8
FOOTER_TEXT_SIZE = 10
FOOTER_TEXT_GAP = 4
HEADER_MARGIN = 20
HEADER_RULE_GAP = 6

BULLET = "•"
FALLBACK_BULLET = "-"
HARD_BREAK_MARKER = "-"
ELLIPSIS = "…"
FALLBACK_ELLIPSIS = "..."


class ImageSizes(Protocol):
    """Source of intrinsic image dimensions."""

    def size(self, src: str) -> Optional[tuple[int, int]]:
        ...


# (text, style, underline)
_Piece = tuple[str, SpanStyle, bool]


@dataclass
class _Word:
    pieces: list[_Piece] = field(default_factory=list)
    space: Optional[_Piece] = None

    def add(self, char: str, style: SpanStyle, underline: bool) -> None:
        if self.pieces and self.pieces[-1][1:] == (style, underline):
            text = self.pieces[-1][0]
            self.pieces[-1] = (text + char, style, underline)
        else:
            self.pieces.append((char, style, underline))


class LayoutEngine:
    """Lays out documents into pages of positioned boxes.

    Output depends only on the document, the geometry, the image sizes and
    the shaper's fonts, so repeated calls produce equal results.
    """

    def __init__(self, shaper: TextShaper, show_progress: bool = True, show_header: bool = True) -> None:
        self._shaper = shaper
        self._show_progress = show_progress
        self._show_header = show_header

    def layout(
        self,
        document: Document,
        geometry: PageGeometry,
        images: Optional[ImageSizes] = None,
        header: Optional[str] = None,
    ) -> LayoutResult:
        """Lay out a document.

        Args:
            document: Parsed document tree
            geometry: Page size, margins and typography
            images: Intrinsic sizes of the job's images
            header: Page title or source URL drawn in the top margin of every page

        Returns:
            LayoutResult with at least one page

        Raises:
            ValueError: If the margins leave no content area
        """
        if geometry.content_width <= 0 or geometry.content_height <= 0:
            raise ValueError(
                f"Page geometry {geometry.width}x{geometry.height} leaves no content area"
            )
        builder = _PageBuilder(self._shaper, geometry, images)
        for child in document.children:
            builder.block(child, indent=0)
        result = builder.finish(self._show_progress, header if self._show_header else None)
        logger.info(
            "Laid out %d blocks into %d pages with %d warnings",
            len(document.children),
            len(result.pages),
            len(result.warnings),
        )
        return result


class _PageBuilder:
    """Mutable state of a single layout run."""

    def __init__(self, shaper: TextShaper, geometry: PageGeometry, images: Optional[ImageSizes]) -> None:
        self._shaper = shaper
        self._geometry = geometry
        self._images = images
        self._pages: list[list[LayoutBox]] = [[]]
        self._y = geometry.content_top
        self._warnings: list[LayoutOverflow] = []
        self._missing: dict[str, None] = {}
        self._font_px = self.font_px(1.0)
        self._line_px = self.line_px(self._font_px)
        self._spacing = geometry.px(geometry.block_spacing)

    # Sizes

    def font_px(self, scale: float) -> int:
        return max(1, round_half_away(self._geometry.base_font_size * scale * self._geometry.dpi_scale))

    def line_px(self, font_px: int) -> int:
        return max(1, round_half_away(font_px * self._geometry.line_height))

    # Placement

    def _place(self, x: int, width: int, height: int, content: BoxContent, spacing: int) -> None:
        page = self._pages[-1]
        top = self._y + spacing if page else self._y
        if page and top + height > self._geometry.content_bottom:
            self._pages.append([])
            top = self._geometry.content_top
        self._pages[-1].append(
            LayoutBox(
                page_index=len(self._pages) - 1,
                x=x,
                y=top,
                width=width,
                height=height,
                content=content,
            )
        )
        self._y = top + height

    def _fit_height(self, block: str, height: int) -> int:
        available = self._geometry.content_height
        if height <= available:
            return height
        self._warnings.append(LayoutOverflow(block, height, available))
        logger.warning("%s taller than the page (%dpx > %dpx), shrinking", block, height, available)
        return available

    # Blocks

    def block(self, node: DocumentNode, indent: int) -> None:
        if isinstance(node, Heading):
            size = self.font_px(HEADING_SCALES.get(node.level, 1.0))
            self.text_block(node.runs, indent, size, SpanStyle.BOLD)
        elif isinstance(node, Paragraph):
            self.text_block(node.runs, indent, self._font_px, SpanStyle.PLAIN)
        elif isinstance(node, BlockQuote):
            quote_indent = indent + self._geometry.px(self._geometry.list_indent)
            self.text_block(node.runs, quote_indent, self._font_px, SpanStyle.ITALIC)
        elif isinstance(node, ListBlock):
            self.list_block(node, indent, self._spacing)
        elif isinstance(node, CodeBlock):
            self.code_block(node, indent)
        elif isinstance(node, Image):
            self.image(node, indent)
        elif isinstance(node, Table):
            self.table(node, indent)
        elif isinstance(node, ThematicBreak):
            width = self._geometry.content_width - indent
            thickness = max(1, self._geometry.px(RULE_THICKNESS))
            self._place(self._geometry.content_left + indent, width, thickness, Rule(), self._spacing)
        elif isinstance(node, Link):
            self.text_block((node,), indent, self._font_px, SpanStyle.PLAIN)
        elif isinstance(node, (Document, ListItem)):
            for child in node.children:
                self.block(child, indent)

    def text_block(
        self,
        runs: Run,
        indent: int,
        size: int,
        base_style: SpanStyle,
        spacing: Optional[int] = None,
        prefix: Optional[_Piece] = None,
    ) -> None:
        width = self._geometry.content_width - indent
        line_px = self.line_px(size)
        lines = self.wrap(self._words(runs, base_style), width, size, prefix)
        height = self._fit_height("text line", line_px)
        for number, line in enumerate(lines):
            gap = (self._spacing if spacing is None else spacing) if number == 0 else 0
            self._place(self._geometry.content_left + indent, width, height, line, gap)

    def list_block(self, node: ListBlock, indent: int, spacing: int) -> None:
        item_indent = indent + self._geometry.px(self._geometry.list_indent)
        for offset, item in enumerate(node.items):
            marker = (self._marker(node, node.start + offset), SpanStyle.PLAIN, False)
            gap = spacing if offset == 0 else 0
            children = item.children
            # the marker goes on the item's first line, alone if it does not start with text
            if children and isinstance(children[0], Paragraph):
                runs, rest = children[0].runs, children[1:]
            else:
                runs, rest = (), children
            self.text_block(runs, item_indent, self._font_px, SpanStyle.PLAIN, spacing=gap, prefix=marker)
            for child in rest:
                if isinstance(child, ListBlock):
                    self.list_block(child, item_indent, 0)
                else:
                    self.block(child, item_indent)

    def _marker(self, node: ListBlock, number: int) -> str:
        if node.ordered:
            return f"{number}. "
        bullet = BULLET if self._shaper.has_glyph(BULLET) else FALLBACK_BULLET
        return f"{bullet} "

    def code_block(self, node: CodeBlock, indent: int) -> None:
        padding = self._geometry.px(CODE_PADDING)
        metrics = self._shaper.metrics(SpanStyle.CODE, self._font_px)
        baseline = self._baseline(metrics.ascent, metrics.height, self._line_px)

        placed = []
        for number, text in enumerate(node.text.expandtabs(4).split("\n")):
            shaped = self._shape(text, SpanStyle.CODE, self._font_px)
            run = GlyphRun(x=padding, style=SpanStyle.CODE, font_size=self._font_px, glyphs=shaped.glyphs)
            line = TextLine(runs=(run,) if text else (), baseline=baseline)
            placed.append(PlacedLine(y=padding + number * self._line_px, line=line))

        requested = len(placed) * self._line_px + 2 * padding
        height = self._fit_height("code block", requested)
        clipped = height < requested
        if clipped:
            visible = max(0, (height - 2 * padding) // self._line_px)
            placed = placed[:visible]
        width = self._geometry.content_width - indent
        content = CodeBlockContent(lines=tuple(placed), clipped=clipped)
        self._place(self._geometry.content_left + indent, width, height, content, self._spacing)

    def image(self, node: Image, indent: int) -> None:
        available = self._geometry.content_width - indent
        size = self._images.size(node.src) if self._images is not None else None

        if size is None or size[0] <= 0 or size[1] <= 0:
            side = min(self._geometry.px(PLACEHOLDER_SIZE), available)
            alt_line = self._alt_line(node.alt or "image", side)
            content = ImageRef(src=node.src, alt=node.alt, placeholder=True, alt_line=alt_line)
            height = self._fit_height("image placeholder", side)
            self._place(self._geometry.content_left + indent, side, height, content, self._spacing)
            return

        intrinsic_width, intrinsic_height = size
        scale = min(1.0, available / intrinsic_width)
        requested = round_half_away(intrinsic_height * scale)
        height = self._fit_height("image", requested)
        if height < requested:
            scale = height / intrinsic_height
        width = max(1, round_half_away(intrinsic_width * scale))
        height = max(1, round_half_away(intrinsic_height * scale))
        x = self._geometry.content_left + indent + (available - width) // 2
        self._place(x, width, height, ImageRef(src=node.src, alt=node.alt), self._spacing)

    def _alt_line(self, alt: str, width: int) -> TextLine:
        padding = self._geometry.px(CELL_PADDING)
        words = self._words((TextSpan(alt, SpanStyle.ITALIC),), SpanStyle.ITALIC)
        lines = self.wrap(words, max(1, width - 2 * padding), self._font_px, None)
        first = lines[0] if lines else TextLine(runs=(), baseline=0)
        runs = tuple(
            GlyphRun(x=run.x + padding, style=run.style, font_size=run.font_size, glyphs=run.glyphs)
            for run in first.runs
        )
        return TextLine(runs=runs, baseline=first.baseline + padding)

    def table(self, node: Table, indent: int) -> None:
        if not node.rows:
            return
        columns = max(len(row) for row in node.rows)
        if columns == 0:
            return
        width = self._geometry.content_width - indent
        column_width = width // columns
        padding = self._geometry.px(CELL_PADDING)

        for row_number, row in enumerate(node.rows):
            header = row_number == 0
            style = SpanStyle.BOLD if header else SpanStyle.PLAIN
            cells = []
            tallest = 1
            for column in range(columns):
                runs = row[column] if column < len(row) else ()
                lines = self.wrap(
                    self._words(runs, style), max(1, column_width - 2 * padding), self._font_px, None
                )
                placed = tuple(
                    PlacedLine(y=padding + number * self._line_px, line=self._shift(line, padding))
                    for number, line in enumerate(lines)
                )
                tallest = max(tallest, len(placed))
                cells.append(TableCell(x=column * column_width, width=column_width, lines=placed))

            requested = tallest * self._line_px + 2 * padding
            height = self._fit_height("table row", requested)
            if height < requested:
                cells = [
                    TableCell(
                        x=cell.x,
                        width=cell.width,
                        lines=tuple(line for line in cell.lines if line.y + self._line_px <= height),
                    )
                    for cell in cells
                ]
            content = TableRowContent(cells=tuple(cells), header=header)
            self._place(
                self._geometry.content_left + indent,
                column_width * columns,
                height,
                content,
                self._spacing if header else 0,
            )

    @staticmethod
    def _shift(line: TextLine, dx: int) -> TextLine:
        runs = tuple(
            GlyphRun(x=run.x + dx, style=run.style, font_size=run.font_size, glyphs=run.glyphs, underline=run.underline)
            for run in line.runs
        )
        return TextLine(runs=runs, baseline=line.baseline)

    # Line breaking

    def _words(self, runs: Run, base_style: SpanStyle) -> list[_Word]:
        words: list[_Word] = []
        current = _Word()
        pending_space: Optional[_Piece] = None

        def pieces():
            for inline in runs:
                spans = inline.runs if isinstance(inline, Link) else (inline,)
                for span in spans:
                    style = base_style if span.style is SpanStyle.PLAIN else span.style
                    yield span.text, style, isinstance(inline, Link)

        for text, style, underline in pieces():
            for char in text:
                if char.isspace():
                    if current.pieces:
                        words.append(current)
                        current = _Word()
                    pending_space = (" ", style, underline)
                    continue
                if not current.pieces and words:
                    current.space = pending_space or (" ", style, underline)
                current.add(char, style, underline)
        if current.pieces:
            words.append(current)
        return words

    def _width(self, piece: _Piece, size: int) -> float:
        return self._shape(piece[0], piece[1], size).width

    def wrap(self, words: list[_Word], width: int, size: int, prefix: Optional[_Piece]) -> list[TextLine]:
        """Break words into lines no wider than ``width``.

        Args:
            words: Words with their preceding space
            width: Available line width in pixels
            size: Font size in pixels
            prefix: List marker drawn on the first line, with a hanging indent

        Returns:
            Lines of glyph runs
        """
        lines: list[list[tuple[float, _Piece]]] = []
        start_x = self._width(prefix, size) if prefix else 0.0
        current: list[tuple[float, _Piece]] = [(0.0, prefix)] if prefix else []
        x = start_x
        has_word = False

        for word in words:
            word_width = sum(self._width(piece, size) for piece in word.pieces)
            space = word.space if has_word else None
            space_width = self._width(space, size) if space else 0.0

            if has_word and x + space_width + word_width > width:
                lines.append(current)
                current, x, has_word = [], start_x, False
                space, space_width = None, 0.0

            pieces = word.pieces
            if not has_word and x + word_width > width:
                chunks = self._hard_break(word.pieces, width - x, width - start_x, size)
                for chunk in chunks[:-1]:
                    for piece in chunk:
                        current.append((x, piece))
                        x += self._width(piece, size)
                    lines.append(current)
                    current, x = [], start_x
                pieces = chunks[-1]

            if space:
                current.append((x, space))
                x += space_width
            for piece in pieces:
                current.append((x, piece))
                x += self._width(piece, size)
            has_word = True

        if current:
            lines.append(current)
        return [self._text_line(line, size) for line in lines]

    def _hard_break(self, pieces: list[_Piece], first_room: float, room: float, size: int) -> list[list[_Piece]]:
        """Split an over-wide word glyph by glyph, marking each break."""
        chars = [(char, style, underline) for text, style, underline in pieces for char in text]
        chunks: list[list[_Piece]] = []
        current = _Word()
        used = 0.0
        limit = first_room
        for index, (char, style, underline) in enumerate(chars):
            advance = self._width((char, style, underline), size)
            marker = self._width((HARD_BREAK_MARKER, style, underline), size)
            is_last = index == len(chars) - 1
            needed = advance if is_last else advance + marker
            if current.pieces and used + needed > limit:
                last_style, last_underline = current.pieces[-1][1:]
                current.add(HARD_BREAK_MARKER, last_style, last_underline)
                chunks.append(current.pieces)
                current, used, limit = _Word(), 0.0, room
            current.add(char, style, underline)
            used += advance
        chunks.append(current.pieces)
        return chunks

    def _text_line(self, positioned: list[tuple[float, _Piece]], size: int) -> TextLine:
        runs = []
        for x, (text, style, underline) in positioned:
            shaped = self._shape(text, style, size)
            runs.append(
                GlyphRun(
                    x=round_half_away(x),
                    style=style,
                    font_size=size,
                    glyphs=shaped.glyphs,
                    underline=underline,
                )
            )
        metrics = self._shaper.metrics(SpanStyle.PLAIN, size)
        return TextLine(runs=tuple(runs), baseline=self._baseline(metrics.ascent, metrics.height, self.line_px(size)))

    @staticmethod
    def _baseline(ascent: int, text_height: int, line_px: int) -> int:
        return (line_px - text_height) // 2 + ascent

    def _shape(self, text: str, style: SpanStyle, size: int):
        shaped = self._shaper.shape(text, style, size)
        for char in shaped.missing:
            self._missing.setdefault(char, None)
        return shaped

    # Finishing

    def finish(self, show_progress: bool, header: Optional[str] = None) -> LayoutResult:
        count = len(self._pages)
        footers = [self._footer(index, count) for index in range(count)] if show_progress else []
        header_line = self._header_line(header) if header else None
        pages = []
        for index, boxes in enumerate(self._pages):
            if header_line is not None:
                boxes = self._header(index, header_line) + boxes
            if footers and footers[index]:
                boxes = boxes + footers[index]
            pages.append(Page(index=index, boxes=tuple(boxes)))

        warnings: list = list(self._warnings)
        for char in self._missing:
            warnings.append(ShapingFallbackExhausted(char))
            logger.warning("No font covers U+%04X, drawing a placeholder glyph", ord(char))
        return LayoutResult(pages=tuple(pages), warnings=tuple(warnings))

    def _footer(self, index: int, count: int) -> list[LayoutBox]:
        """Progress bar and page counter in the bottom margin, if they fit."""
        geometry = self._geometry
        bar_width = min(geometry.px(FOOTER_BAR_WIDTH), geometry.width)
        bar_height = geometry.px(FOOTER_BAR_HEIGHT)
        bar_top = geometry.height - geometry.px(FOOTER_MARGIN) - bar_height
        text_size = self.font_px(FOOTER_TEXT_SIZE / geometry.base_font_size)
        text_top = geometry.height - geometry.px(FOOTER_MARGIN) + geometry.px(FOOTER_TEXT_GAP)
        text_height = self.line_px(text_size)
        if bar_top < geometry.content_bottom or text_top + text_height > geometry.height:
            return []

        label = f"{index + 1} / {count}"
        words = self._words((TextSpan(label),), SpanStyle.PLAIN)
        line = self.wrap(words, geometry.width, text_size, None)[0]
        text_width = max(1, round_half_away(self._shape(label, SpanStyle.PLAIN, text_size).width))
        return [
            LayoutBox(
                page_index=index,
                x=(geometry.width - bar_width) // 2,
                y=bar_top,
                width=bar_width,
                height=bar_height,
                content=ProgressBar(page_number=index + 1, page_count=count),
            ),
            LayoutBox(
                page_index=index,
                x=(geometry.width - text_width) // 2,
                y=text_top,
                width=text_width,
                height=text_height,
                content=line,
            ),
        ]

    def _header_size(self) -> int:
        return self.font_px(FOOTER_TEXT_SIZE / self._geometry.base_font_size)

    def _header_line(self, text: str) -> Optional[TextLine]:
        """One line of header text, cut with an ellipsis, or None if the top margin is too small."""
        geometry = self._geometry
        size = self._header_size()
        rule_top = geometry.px(HEADER_MARGIN) + self.line_px(size) + geometry.px(HEADER_RULE_GAP)
        if rule_top + max(1, geometry.px(RULE_THICKNESS)) > geometry.content_top:
            return None
        text = " ".join(text.split())
        if not text:
            return None

        width = geometry.content_width
        if self._shape(text, SpanStyle.PLAIN, size).width > width:
            ellipsis = ELLIPSIS if self._shaper.has_glyph(ELLIPSIS) else FALLBACK_ELLIPSIS
            room = width - self._shape(ellipsis, SpanStyle.PLAIN, size).width
            kept = []
            used = 0.0
            for char in text:
                used += self._shape(char, SpanStyle.PLAIN, size).width
                if used > room:
                    break
                kept.append(char)
            text = "".join(kept).rstrip() + ellipsis

        return self._text_line([(0.0, (text, SpanStyle.PLAIN, False))], size)

    def _header(self, index: int, line: TextLine) -> list[LayoutBox]:
        """Header text and a rule under it in the top margin."""
        geometry = self._geometry
        text_top = geometry.px(HEADER_MARGIN)
        text_height = self.line_px(self._header_size())
        return [
            LayoutBox(
                page_index=index,
                x=geometry.content_left,
                y=text_top,
                width=geometry.content_width,
                height=text_height,
                content=line,
            ),
            LayoutBox(
                page_index=index,
                x=geometry.content_left,
                y=text_top + text_height + geometry.px(HEADER_RULE_GAP),
                width=geometry.content_width,
                height=max(1, geometry.px(RULE_THICKNESS)),
                content=Rule(),
            ),
        ]
