"""Page rasterization with Pillow."""

from __future__ import annotations

import logging
import math
from typing import Optional

from PIL import Image, ImageDraw

from inkreader.models.document import SpanStyle
from inkreader.models.layout import (
    CodeBlockContent,
    ImageRef,
    LayoutBox,
    Page,
    ProgressBar,
    Rule,
    TableRowContent,
    TextLine,
    round_half_away,
)
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec
from inkreader.rendering.images import ImageStore, resize_image_for_box
from inkreader.text.shaper import TextShaper

logger = logging.getLogger(__name__)

WHITE = 255
BLACK = 0
PLACEHOLDER_FILL = 0xEE
FRAME_SHADE = 0x99
PROGRESS_OUTER = 0x55
PROGRESS_INNER = 0x99
PROGRESS_INNER_OFFSET = 3

UNDERLINE_OFFSET = 2
UNDERLINE_THICKNESS = 2
TOFU_WIDTH_RATIO = 0.8
TOFU_HEIGHT_RATIO = 0.7


class Rasterizer:
    """Draws laid-out pages onto pixel surfaces.

    Output depends only on the page, the surface spec and the job's images.
    """

    def __init__(self, shaper: TextShaper) -> None:
        self._shaper = shaper

    def rasterize(self, page: Page, spec: SurfaceSpec, images: Optional[ImageStore] = None) -> PixelSurface:
        """Rasterize one page.

        Args:
            page: Laid-out page
            spec: Target dimensions and color depth
            images: Decoded images for the page's job

        Returns:
            PixelSurface in the requested depth
        """
        canvas = Image.new("L", (spec.width, spec.height), WHITE)
        draw = ImageDraw.Draw(canvas)

        for box in page.boxes:
            content = box.content
            if isinstance(content, TextLine):
                self._draw_line(draw, content, box.x, box.y)
            elif isinstance(content, CodeBlockContent):
                self._draw_code(canvas, box, content)
            elif isinstance(content, TableRowContent):
                self._draw_table_row(draw, box, content)
            elif isinstance(content, ImageRef):
                self._draw_image(canvas, draw, box, content, images)
            elif isinstance(content, Rule):
                draw.rectangle((box.x, box.y, box.x + box.width - 1, box.bottom - 1), fill=content.shade)
            elif isinstance(content, ProgressBar):
                self._draw_progress(draw, box, content)

        logger.debug("Rasterized page %d with %d boxes", page.index, len(page.boxes))
        return self._finish(canvas, spec)

    def status_screen(self, message: str, spec: SurfaceSpec) -> PixelSurface:
        """Draw a centered message, used for the loading and error screens.

        Args:
            message: Text to show, may contain line breaks
            spec: Target dimensions and color depth

        Returns:
            PixelSurface with the message
        """
        canvas = Image.new("L", (spec.width, spec.height), WHITE)
        draw = ImageDraw.Draw(canvas)
        size = max(12, spec.width // 30)
        font = self._shaper.cascade(SpanStyle.PLAIN).primary.font(size)
        draw.multiline_text(
            (spec.width // 2, spec.height // 2),
            message,
            font=font,
            fill=BLACK,
            anchor="mm",
            align="center",
            spacing=size // 2,
        )
        return self._finish(canvas, spec)

    @staticmethod
    def _finish(canvas: Image.Image, spec: SurfaceSpec) -> PixelSurface:
        if spec.depth is ColorDepth.ONE_BIT:
            canvas = canvas.convert("1", dither=Image.Dither.FLOYDSTEINBERG)
        return PixelSurface.from_image(canvas)

    def _draw_line(self, draw: ImageDraw.ImageDraw, line: TextLine, left: int, top: int) -> None:
        baseline = top + line.baseline
        for run in line.runs:
            x = float(left + run.x)
            start = x
            for glyph in run.glyphs:
                position = (round_half_away(x + glyph.x_offset), round_half_away(baseline + glyph.y_offset))
                if glyph.is_tofu:
                    self._draw_tofu(draw, position, glyph.advance, run.font_size)
                else:
                    face = self._shaper.face(glyph.face)
                    stroke = 1 if run.style is SpanStyle.BOLD and not face.bold else 0
                    draw.text(
                        position,
                        glyph.char,
                        font=face.font(run.font_size),
                        fill=BLACK,
                        anchor="ls",
                        stroke_width=stroke,
                        stroke_fill=BLACK,
                    )
                x += glyph.advance
            if run.underline and x > start:
                y = baseline + UNDERLINE_OFFSET
                draw.rectangle(
                    (round_half_away(start), y, round_half_away(x) - 1, y + UNDERLINE_THICKNESS - 1),
                    fill=BLACK,
                )

    @staticmethod
    def _draw_tofu(draw: ImageDraw.ImageDraw, position: tuple[int, int], advance: float, size: int) -> None:
        x, baseline = position
        width = max(2, int(advance * TOFU_WIDTH_RATIO))
        height = max(2, int(size * TOFU_HEIGHT_RATIO))
        draw.rectangle((x + 1, baseline - height, x + width, baseline), outline=BLACK)

    def _draw_code(self, canvas: Image.Image, box: LayoutBox, content: CodeBlockContent) -> None:
        # drawn separately so long lines are clipped at the box edge
        block = Image.new("L", (box.width, box.height), WHITE)
        draw = ImageDraw.Draw(block)
        for placed in content.lines:
            self._draw_line(draw, placed.line, 0, placed.y)
        draw.rectangle((0, 0, box.width - 1, box.height - 1), outline=FRAME_SHADE)
        canvas.paste(block, (box.x, box.y))

    def _draw_table_row(self, draw: ImageDraw.ImageDraw, box: LayoutBox, content: TableRowContent) -> None:
        for cell in content.cells:
            left = box.x + cell.x
            draw.rectangle((left, box.y, left + cell.width - 1, box.bottom - 1), outline=FRAME_SHADE)
            for placed in cell.lines:
                self._draw_line(draw, placed.line, left, box.y + placed.y)

    def _draw_image(
        self,
        canvas: Image.Image,
        draw: ImageDraw.ImageDraw,
        box: LayoutBox,
        content: ImageRef,
        images: Optional[ImageStore],
    ) -> None:
        source = None if content.placeholder or images is None else images.get(content.src)
        if source is None:
            draw.rectangle(
                (box.x, box.y, box.x + box.width - 1, box.bottom - 1),
                fill=PLACEHOLDER_FILL,
                outline=FRAME_SHADE,
            )
            if content.alt_line is not None:
                self._draw_line(draw, content.alt_line, box.x, box.y)
            return
        canvas.paste(resize_image_for_box(source, box.width, box.height), (box.x, box.y))

    @staticmethod
    def _draw_progress(draw: ImageDraw.ImageDraw, box: LayoutBox, content: ProgressBar) -> None:
        draw.rectangle((box.x, box.y, box.x + box.width - 1, box.bottom - 1), outline=PROGRESS_OUTER)
        inner_width = box.width - 2 * PROGRESS_INNER_OFFSET
        if inner_width <= 0 or content.page_count <= 0:
            return
        filled = math.ceil(inner_width * content.page_number / content.page_count)
        top = box.y + PROGRESS_INNER_OFFSET
        bottom = box.bottom - 1 - PROGRESS_INNER_OFFSET
        if filled > 0 and bottom >= top:
            left = box.x + PROGRESS_INNER_OFFSET
            draw.rectangle((left, top, left + filled - 1, bottom), fill=PROGRESS_INNER)
