"""Text shaping over an ordered font cascade.

Each character is resolved against the cascade for its style; the first face
whose character map contains it wins. Characters that no face covers are
emitted as a fixed-width placeholder ("tofu") glyph instead of failing.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from fontTools.ttLib import TTFont
from PIL import ImageFont

from inkreader.models.document import SpanStyle
from inkreader.models.text import TOFU_FACE, TOFU_GLYPH_ID, FontMetrics, ShapedGlyph, ShapedRun

logger = logging.getLogger(__name__)

BUILTIN_FACE_NAME = "builtin"
TOFU_ADVANCE_RATIO = 0.6

# Pillow's bundled face covers Basic Latin and Latin-1
_BUILTIN_COVERAGE = frozenset(list(range(0x20, 0x7F)) + list(range(0xA0, 0x100)))


class FontFace:
    """A single font in the cascade, loadable at any pixel size."""

    def __init__(
        self,
        name: str,
        path: Path | None,
        glyph_ids: Mapping[int, int],
        bold: bool = False,
        italic: bool = False,
        monospace: bool = False,
    ) -> None:
        """Initialize a font face.

        Args:
            name: Unique face name used to reference glyphs
            path: Font file, None for Pillow's built-in face
            glyph_ids: Codepoint to glyph id map
            bold: Whether the face is a bold design
            italic: Whether the face is an italic design
            monospace: Whether the face is fixed-pitch
        """
        self.name = name
        self.path = path
        self.bold = bold
        self.italic = italic
        self.monospace = monospace
        self._glyph_ids = dict(glyph_ids)
        self._fonts: dict[int, ImageFont.FreeTypeFont] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: Path, name: str | None = None, **flags: bool) -> "FontFace":
        """Load a face from a TrueType/OpenType file.

        Args:
            path: Font file path
            name: Face name, defaults to the file stem
            **flags: bold/italic/monospace design flags

        Returns:
            FontFace with coverage read from the font's cmap
        """
        tt = TTFont(str(path), fontNumber=0, lazy=True)
        try:
            order = {glyph: index for index, glyph in enumerate(tt.getGlyphOrder())}
            cmap = tt.getBestCmap() or {}
            glyph_ids = {cp: order[glyph] for cp, glyph in cmap.items() if order.get(glyph)}
        finally:
            tt.close()
        logger.debug("Loaded font %s with %d mapped codepoints", path, len(glyph_ids))
        return cls(name or path.stem, path, glyph_ids, **flags)

    @classmethod
    def builtin(cls) -> "FontFace":
        return cls(BUILTIN_FACE_NAME, None, {cp: cp for cp in _BUILTIN_COVERAGE})

    def covers(self, char: str) -> bool:
        return ord(char) in self._glyph_ids

    def glyph_id(self, char: str) -> int:
        return self._glyph_ids.get(ord(char), TOFU_GLYPH_ID)

    def font(self, size: int) -> ImageFont.FreeTypeFont:
        """Return the Pillow font for a pixel size, loading it once.

        Args:
            size: Pixel size

        Returns:
            FreeType font object
        """
        with self._lock:
            font = self._fonts.get(size)
            if font is None:
                if self.path is None:
                    font = ImageFont.load_default(size=size)
                else:
                    font = ImageFont.truetype(
                        str(self.path), size, layout_engine=ImageFont.Layout.BASIC
                    )
                self._fonts[size] = font
            return font

    def __repr__(self) -> str:
        return f"FontFace(name={self.name!r}, path={self.path}, bold={self.bold})"


class FontCascade:
    """Ordered list of faces evaluated first-match-wins."""

    def __init__(self, faces: Sequence[FontFace]) -> None:
        if not faces:
            raise ValueError("A font cascade needs at least one face")
        self.faces = tuple(faces)

    @property
    def primary(self) -> FontFace:
        return self.faces[0]

    def resolve(self, char: str) -> FontFace | None:
        for face in self.faces:
            if face.covers(char):
                return face
        return None


class TextShaper:
    """Shapes styled text runs into glyphs, caching results by (text, style, size).

    The cache lives for the shaper's lifetime and is never invalidated, so a
    render always observes a consistent set of shaped runs.
    """

    def __init__(self, cascades: Mapping[SpanStyle, FontCascade]) -> None:
        """Initialize the shaper.

        Args:
            cascades: Cascade per style; styles without an entry use PLAIN's
        """
        if SpanStyle.PLAIN not in cascades:
            raise ValueError("A cascade for SpanStyle.PLAIN is required")
        self._cascades = dict(cascades)
        self._faces: dict[str, FontFace] = {}
        for cascade in self._cascades.values():
            for face in cascade.faces:
                self._faces.setdefault(face.name, face)
        self._cache: dict[tuple[str, SpanStyle, int], ShapedRun] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_font_files(
        cls,
        regular: Iterable[Path] = (),
        bold: Iterable[Path] = (),
        italic: Iterable[Path] = (),
        monospace: Iterable[Path] = (),
    ) -> "TextShaper":
        """Build a shaper from font file lists.

        Unreadable files are skipped with a warning. Pillow's built-in face is
        always appended as the last entry of every cascade.

        Args:
            regular: Base cascade, in priority order
            bold: Faces preferred for bold text
            italic: Faces preferred for italic text
            monospace: Faces preferred for code

        Returns:
            Configured TextShaper
        """
        used_names: set[str] = set()

        def load(paths: Iterable[Path], **flags: bool) -> list[FontFace]:
            faces = []
            for path in paths:
                name = Path(path).stem
                while name in used_names:
                    name += "_"
                try:
                    face = FontFace.from_file(Path(path), name=name, **flags)
                except Exception as e:
                    logger.warning("Skipping unreadable font %s: %s", path, e)
                    continue
                used_names.add(name)
                faces.append(face)
            return faces

        base = load(regular) + [FontFace.builtin()]
        return cls(
            {
                SpanStyle.PLAIN: FontCascade(base),
                SpanStyle.BOLD: FontCascade(load(bold, bold=True) + base),
                SpanStyle.ITALIC: FontCascade(load(italic, italic=True) + base),
                SpanStyle.CODE: FontCascade(load(monospace, monospace=True) + base),
            }
        )

    def cascade(self, style: SpanStyle) -> FontCascade:
        return self._cascades.get(style, self._cascades[SpanStyle.PLAIN])

    def face(self, name: str) -> FontFace:
        return self._faces[name]

    def has_glyph(self, char: str, style: SpanStyle = SpanStyle.PLAIN) -> bool:
        return self.cascade(style).resolve(char) is not None

    def metrics(self, style: SpanStyle, size: int) -> FontMetrics:
        ascent, descent = self.cascade(style).primary.font(size).getmetrics()
        return FontMetrics(ascent=int(ascent), descent=int(descent))

    def shape(self, text: str, style: SpanStyle, size: int) -> ShapedRun:
        """Shape a run of text.

        Args:
            text: Text without line breaks
            style: Inline style
            size: Pixel size

        Returns:
            ShapedRun with one glyph per character
        """
        key = (text, style, size)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        cascade = self.cascade(style)
        glyphs = []
        missing = []
        width = 0.0
        for char in text:
            face = cascade.resolve(char)
            if face is None:
                advance = float(size) * TOFU_ADVANCE_RATIO
                glyphs.append(ShapedGlyph(TOFU_GLYPH_ID, advance, 0.0, 0.0, char, TOFU_FACE))
                if char not in missing:
                    missing.append(char)
            else:
                advance = float(face.font(size).getlength(char))
                glyphs.append(ShapedGlyph(face.glyph_id(char), advance, 0.0, 0.0, char, face.name))
            width += advance

        shaped = ShapedRun(glyphs=tuple(glyphs), width=width, missing=tuple(missing))
        with self._cache_lock:
            self._cache.setdefault(key, shaped)
        return shaped

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cache)
