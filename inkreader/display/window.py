"""Desktop preview backend using pygame."""

from __future__ import annotations

import collections
import logging
import threading
from typing import TYPE_CHECKING, Any, Optional

import pygame
from PIL import Image

from inkreader.display.input_mapping import KeyCode, map_key, map_tap
from inkreader.exceptions import DeviceIoError
from inkreader.models.input import ACTION_EXIT, InputEvent
from inkreader.models.layout import round_half_away
from inkreader.models.surface import PixelSurface, SurfaceSpec

if TYPE_CHECKING:
    from inkreader.config.settings import DisplaySettings

logger = logging.getLogger(__name__)

PYGAME_KEYS: dict[int, KeyCode] = {
    pygame.K_LEFT: KeyCode.LEFT_ARROW,
    pygame.K_RIGHT: KeyCode.RIGHT_ARROW,
    pygame.K_UP: KeyCode.UP_ARROW,
    pygame.K_DOWN: KeyCode.DOWN_ARROW,
    pygame.K_PAGEUP: KeyCode.PAGE_UP,
    pygame.K_PAGEDOWN: KeyCode.PAGE_DOWN,
    pygame.K_SPACE: KeyCode.SPACE,
    pygame.K_HOME: KeyCode.HOME,
    pygame.K_END: KeyCode.END,
    pygame.K_ESCAPE: KeyCode.ESCAPE,
}

LEFT_MOUSE_BUTTON = 1


class WindowBackend:
    """Shows pages in a scaled desktop window.

    SDL supports a single display window per process, so only one instance
    can be open at a time.
    """

    _open = False
    _open_lock = threading.Lock()

    def __init__(self, spec: SurfaceSpec, scale: float = 0.5, title: str = "inkreader") -> None:
        """Open the preview window.

        Args:
            spec: Surface size and depth pages are rendered at
            scale: Window size relative to the surface
            title: Window caption

        Raises:
            DeviceIoError: If a window is already open or SDL fails
        """
        self._spec = spec
        self._scale = scale
        self._size = (
            max(1, round_half_away(spec.width * scale)),
            max(1, round_half_away(spec.height * scale)),
        )
        self._lock = threading.Lock()
        self._events: collections.deque[InputEvent] = collections.deque()
        self._closed = False

        with WindowBackend._open_lock:
            if WindowBackend._open:
                raise DeviceIoError("A preview window is already open")
            WindowBackend._open = True

        try:
            pygame.display.init()
            self._screen = pygame.display.set_mode(self._size)
            pygame.display.set_caption(title)
            self._screen.fill((255, 255, 255))
            pygame.display.flip()
        except pygame.error as e:
            self._release()
            raise DeviceIoError(f"Could not open preview window: {e}") from e

        logger.info(
            "WindowBackend opened %dx%d window for %dx%d surfaces",
            self._size[0],
            self._size[1],
            spec.width,
            spec.height,
        )

    @classmethod
    def from_settings(cls, settings: "DisplaySettings") -> "WindowBackend":
        return cls(settings.surface_spec, scale=settings.window_scale, title=settings.window_title)

    def surface_spec(self) -> SurfaceSpec:
        return self._spec

    def present(self, surface: PixelSurface) -> None:
        image = surface.to_grayscale()
        if image.size != self._size:
            image = image.resize(self._size, Image.Resampling.LANCZOS)
        rgb = image.convert("RGB")

        with self._lock:
            if self._closed:
                raise DeviceIoError("Display backend is closed")
            try:
                frame = pygame.image.frombuffer(rgb.tobytes(), rgb.size, "RGB")
                self._screen.blit(frame, (0, 0))
                pygame.display.flip()
            except pygame.error as e:
                raise DeviceIoError(f"Window update failed: {e}") from e
        logger.debug("Presented %dx%d frame", surface.width, surface.height)

    def poll_input(self) -> Optional[InputEvent]:
        with self._lock:
            if self._closed:
                return None
            if not self._events:
                try:
                    pending = pygame.event.get()
                except pygame.error as e:
                    logger.warning("Reading window events failed: %s", e)
                    return None
                for event in pending:
                    translated = self._translate(event)
                    if translated is not None:
                        self._events.append(translated)
            return self._events.popleft() if self._events else None

    def _translate(self, event: Any) -> Optional[InputEvent]:
        if event.type == pygame.QUIT:
            return InputEvent.custom(ACTION_EXIT)
        if event.type == pygame.KEYDOWN:
            return map_key(PYGAME_KEYS.get(event.key, KeyCode.UNKNOWN))
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == LEFT_MOUSE_BUTTON:
            x, y = event.pos
            return map_tap(x / self._scale, y / self._scale, self._spec.width)
        return None

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pygame.display.quit()
            self._release()
            logger.info("WindowBackend closed")

    @staticmethod
    def _release() -> None:
        with WindowBackend._open_lock:
            WindowBackend._open = False

    def __enter__(self) -> "WindowBackend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
