"""Tests for the pygame preview window, run against SDL's dummy video driver."""

import pygame
import pytest
from PIL import Image

from inkreader.display.window import WindowBackend
from inkreader.exceptions import DeviceIoError
from inkreader.models.input import ACTION_EXIT, NEXT, PREVIOUS, InputEvent
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec

pytestmark = pytest.mark.unit

SPEC = SurfaceSpec(300, 400, ColorDepth.ONE_BIT)


@pytest.fixture
def window():
    backend = WindowBackend(SPEC, scale=0.5)
    yield backend
    backend.close()


class TestWindowBackend:
    """Tests for WindowBackend."""

    def test_init_when_opened_then_window_scaled(self, window: WindowBackend) -> None:
        assert pygame.display.get_surface().get_size() == (150, 200)
        assert window.surface_spec() == SPEC

    def test_present_when_black_page_then_window_black(self, window: WindowBackend) -> None:
        page = PixelSurface.from_image(Image.new("1", (SPEC.width, SPEC.height), 0))

        window.present(page)

        assert pygame.display.get_surface().get_at((75, 100))[:3] == (0, 0, 0)

    def test_init_when_window_open_then_second_raises(self, window: WindowBackend) -> None:
        with pytest.raises(DeviceIoError, match="already open"):
            WindowBackend(SPEC)

    def test_poll_input_when_keys_and_clicks_then_translated(self, window: WindowBackend) -> None:
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_RIGHT))
        pygame.event.post(pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=1, pos=(10, 10)))
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_F5))
        pygame.event.post(pygame.event.Event(pygame.QUIT))

        events = []
        while (event := window.poll_input()) is not None:
            events.append(event)

        assert events == [NEXT, PREVIOUS, InputEvent.custom(ACTION_EXIT)]

    def test_present_when_closed_then_raises(self) -> None:
        backend = WindowBackend(SPEC)
        backend.close()
        backend.close()

        with pytest.raises(DeviceIoError, match="closed"):
            backend.present(PixelSurface.from_image(Image.new("1", (SPEC.width, SPEC.height), 1)))
        assert backend.poll_input() is None
