"""Shared fixtures for inkreader tests."""

import os

# pygame must not open a real window during tests
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import io
from collections import deque
from typing import Any, Optional

import pytest
from PIL import Image

from inkreader.exceptions import DeviceIoError
from inkreader.models.input import InputEvent
from inkreader.models.layout import Margins, PageGeometry, TextLine
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec
from inkreader.text.shaper import TextShaper


class RecordingBackend:
    """In-memory display backend that records every presented surface."""

    def __init__(self, width: int = 300, height: int = 400, depth: ColorDepth = ColorDepth.ONE_BIT) -> None:
        self._spec = SurfaceSpec(width, height, depth)
        self.presented: list[PixelSurface] = []
        self.events: deque[InputEvent] = deque()
        self.fail_presents = 0
        self.closed = False

    def surface_spec(self) -> SurfaceSpec:
        return self._spec

    def present(self, surface: PixelSurface) -> None:
        if self.closed:
            raise DeviceIoError("Display backend is closed")
        if self.fail_presents > 0:
            self.fail_presents -= 1
            raise DeviceIoError("simulated write failure")
        self.presented.append(surface)

    def poll_input(self) -> Optional[InputEvent]:
        return self.events.popleft() if self.events else None

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "RecordingBackend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def line_text(line: TextLine) -> str:
    """Characters of a laid-out text line."""
    return "".join(glyph.char for run in line.runs for glyph in run.glyphs)


def png_bytes(width: int, height: int, color: int = 0) -> bytes:
    """Encode a solid grayscale PNG."""
    buffer = io.BytesIO()
    Image.new("L", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(scope="session")
def shaper() -> TextShaper:
    """Shaper using only Pillow's built-in face, independent of installed fonts."""
    return TextShaper.from_font_files()


@pytest.fixture
def geometry() -> PageGeometry:
    return PageGeometry(width=600, height=800, margins=Margins(top=20, right=20, bottom=20, left=20))


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()
