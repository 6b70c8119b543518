"""Display backend interface and backend selection."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Protocol

from inkreader.models.input import InputEvent
from inkreader.models.surface import PixelSurface, SurfaceSpec

if TYPE_CHECKING:
    from inkreader.config.settings import DisplaySettings

logger = logging.getLogger(__name__)


class BackendKind(Enum):
    """The supported display backends."""

    DEVICE = "device"
    WINDOW = "window"


class DisplayBackend(Protocol):
    """Protocol for an exclusively owned output device.

    ``present`` and ``poll_input`` may be called from different threads;
    implementations serialize them against each other.
    """

    def surface_spec(self) -> SurfaceSpec:
        """Get the dimensions and depth surfaces must be rendered at.

        Returns:
            SurfaceSpec of the output
        """
        ...

    def present(self, surface: PixelSurface) -> None:
        """Show a surface with a full refresh.

        Args:
            surface: Rasterized page matching ``surface_spec()``

        Raises:
            DeviceIoError: If the output could not be written
        """
        ...

    def poll_input(self) -> Optional[InputEvent]:
        """Return the next pending input event without blocking.

        Returns:
            InputEvent, or None when nothing is pending
        """
        ...

    def close(self) -> None:
        """Release the device handle. Safe to call more than once."""
        ...

    def __enter__(self) -> "DisplayBackend":
        ...

    def __exit__(self, *exc_info: Any) -> None:
        ...


def create_backend(settings: "DisplaySettings") -> DisplayBackend:
    """Open the backend selected in the settings.

    Args:
        settings: Display settings

    Returns:
        An open display backend

    Raises:
        DeviceIoError: If the device or window cannot be opened
    """
    kind = BackendKind(settings.backend)
    logger.info("Opening %s display backend", kind.value)
    if kind is BackendKind.DEVICE:
        from inkreader.display.device import DeviceBackend

        return DeviceBackend.from_settings(settings)

    from inkreader.display.window import WindowBackend

    return WindowBackend.from_settings(settings)
