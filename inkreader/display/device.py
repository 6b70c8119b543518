"""E-ink framebuffer backend for Linux tablets.

Frames are written to a framebuffer device file (8-bit grayscale or RGB565)
followed by an optional full-screen ``MXCFB_SEND_UPDATE`` refresh request.
Touch and button input is read from evdev device files without blocking.
"""

from __future__ import annotations

import collections
import errno
import fcntl
import logging
import os
import struct
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Optional

from inkreader.display.input_mapping import map_evdev_key, map_tap
from inkreader.exceptions import DeviceIoError
from inkreader.models.input import InputEvent
from inkreader.models.surface import PixelSurface, SurfaceSpec

if TYPE_CHECKING:
    from inkreader.config.settings import DisplaySettings

logger = logging.getLogger(__name__)

# linux/mxcfb.h: _IOW('F', 0x2E, struct mxcfb_update_data)
MXCFB_SEND_UPDATE = 0x4048462E
WAVEFORM_MODE_GC16 = 2
UPDATE_MODE_FULL = 1
TEMP_USE_AMBIENT = 0x1000
# update_region, waveform, mode, marker, temp, flags, dither, quant_bit, alt_buffer_data
_UPDATE_DATA = struct.Struct("<4I3IiIii7I")

# struct input_event: timeval, type, code, value
_INPUT_EVENT = struct.Struct("llHHi")
EV_SYN = 0x00
EV_KEY = 0x01
EV_ABS = 0x03
SYN_REPORT = 0
ABS_MT_POSITION_X = 0x35
ABS_MT_POSITION_Y = 0x36
ABS_MT_TRACKING_ID = 0x39
KEY_PRESS = 1

# RGB565 of a gray level, split into little-endian low and high bytes
_RGB565_LOW = bytes((((g >> 2) << 5) & 0xFF) | (g >> 3) for g in range(256))
_RGB565_HIGH = bytes(((g >> 3) << 3) | ((g >> 2) >> 3) for g in range(256))


def encode_frame(surface: PixelSurface, bpp: int, stride: Optional[int] = None) -> bytes:
    """Convert a surface to raw framebuffer bytes.

    Args:
        surface: Surface to encode
        bpp: Framebuffer bits per pixel, 8 or 16
        stride: Bytes per framebuffer row, defaults to the packed row size

    Returns:
        Frame bytes ready to be written at offset 0
    """
    gray = surface.to_grayscale().tobytes()
    if bpp == 8:
        pixels = gray
    elif bpp == 16:
        frame = bytearray(len(gray) * 2)
        frame[0::2] = gray.translate(_RGB565_LOW)
        frame[1::2] = gray.translate(_RGB565_HIGH)
        pixels = bytes(frame)
    else:
        raise ValueError(f"Unsupported framebuffer depth: {bpp}")

    row = surface.width * bpp // 8
    if stride is None or stride == row:
        return pixels
    if stride < row:
        raise ValueError(f"Framebuffer stride {stride} is shorter than a row of {row} bytes")
    padding = bytes(stride - row)
    return b"".join(pixels[y * row : (y + 1) * row] + padding for y in range(surface.height))


class _TouchTracker:
    """Turns multitouch slot updates into taps at the touch-down position."""

    def __init__(self) -> None:
        self.x: Optional[int] = None
        self.y: Optional[int] = None
        self.active = False
        self.start: Optional[tuple[int, int]] = None

    def tracking(self, value: int) -> Optional[tuple[int, int]]:
        if value >= 0:
            self.active = True
            self.start = None
            return None
        tap = self.start if self.active else None
        self.active = False
        self.start = None
        return tap

    def sync(self) -> None:
        if self.active and self.start is None and self.x is not None and self.y is not None:
            self.start = (self.x, self.y)


class DeviceBackend:
    """Framebuffer display backend with evdev input.

    Only one instance may hold a given framebuffer, enforced within the
    process by a registry and across processes by an exclusive ``flock``.
    """

    _claimed: set[str] = set()
    _claim_lock = threading.Lock()

    def __init__(
        self,
        framebuffer_path: Path,
        spec: SurfaceSpec,
        bpp: int = 16,
        stride: Optional[int] = None,
        input_devices: tuple[Path, ...] = (),
        full_refresh: bool = True,
        touch_range: Optional[tuple[int, int]] = None,
        touch_invert: tuple[bool, bool] = (False, False),
    ) -> None:
        """Open the framebuffer and input devices.

        Args:
            framebuffer_path: Framebuffer device file
            spec: Surface size and depth rendered for this device
            bpp: Framebuffer bits per pixel
            stride: Bytes per framebuffer row
            input_devices: evdev files to read touch and buttons from
            full_refresh: Issue MXCFB_SEND_UPDATE after each frame
            touch_range: Raw touch coordinate maxima, None if already pixels
            touch_invert: Mirror raw touch X and Y

        Raises:
            DeviceIoError: If the framebuffer is in use or cannot be opened
        """
        self._path = Path(framebuffer_path)
        self._key = str(self._path.resolve())
        self._spec = spec
        self._bpp = bpp
        self._stride = stride
        self._full_refresh = full_refresh
        self._touch_range = touch_range
        self._touch_invert = touch_invert
        self._lock = threading.Lock()
        self._events: collections.deque[InputEvent] = collections.deque()
        self._last_frame: Optional[bytes] = None
        self._marker = 0
        self._input_fds: dict[int, _TouchTracker] = {}
        self._fb: Optional[BinaryIO] = None

        with DeviceBackend._claim_lock:
            if self._key in DeviceBackend._claimed:
                raise DeviceIoError(f"Framebuffer {self._path} is already owned by another backend")
            DeviceBackend._claimed.add(self._key)

        try:
            self._fb = open(self._path, "r+b", buffering=0)  # noqa: SIM115
            fcntl.flock(self._fb.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            self._release()
            raise DeviceIoError(f"Framebuffer {self._path} is locked by another process") from e
        except OSError as e:
            self._release()
            raise DeviceIoError(f"Cannot open framebuffer {self._path}: {e}") from e

        for device in input_devices:
            try:
                fd = os.open(device, os.O_RDONLY | os.O_NONBLOCK)
            except OSError as e:
                logger.warning("Skipping input device %s: %s", device, e)
                continue
            self._input_fds[fd] = _TouchTracker()

        logger.info(
            "DeviceBackend opened %s (%dx%d, %d bpp, %d input devices)",
            self._path,
            spec.width,
            spec.height,
            bpp,
            len(self._input_fds),
        )

    @classmethod
    def from_settings(cls, settings: "DisplaySettings") -> "DeviceBackend":
        touch_range = None
        if settings.touch_max_x and settings.touch_max_y:
            touch_range = (settings.touch_max_x, settings.touch_max_y)
        return cls(
            framebuffer_path=settings.framebuffer_path,
            spec=settings.surface_spec,
            bpp=settings.framebuffer_bpp,
            stride=settings.framebuffer_stride,
            input_devices=tuple(settings.input_devices),
            full_refresh=settings.full_refresh_ioctl,
            touch_range=touch_range,
            touch_invert=(settings.touch_invert_x, settings.touch_invert_y),
        )

    def surface_spec(self) -> SurfaceSpec:
        return self._spec

    def present(self, surface: PixelSurface) -> None:
        """Write a frame and request a full refresh.

        On a failed write the last good frame is written back so the panel
        keeps showing the previous page.

        Args:
            surface: Surface matching ``surface_spec()``

        Raises:
            DeviceIoError: If the frame could not be written
            ValueError: If the surface size does not match the device
        """
        if (surface.width, surface.height) != (self._spec.width, self._spec.height):
            raise ValueError(
                f"Surface {surface.width}x{surface.height} does not match "
                f"device {self._spec.width}x{self._spec.height}"
            )
        frame = encode_frame(surface, self._bpp, self._stride)

        with self._lock:
            if self._fb is None:
                raise DeviceIoError("Display backend is closed")
            try:
                self._write(frame)
            except OSError as e:
                logger.error("Framebuffer write failed: %s", e)
                self._restore()
                raise DeviceIoError(f"Framebuffer write failed: {e}") from e
            self._last_frame = frame
            self._refresh()
        logger.debug("Presented %dx%d frame", surface.width, surface.height)

    def _write(self, frame: bytes) -> None:
        assert self._fb is not None
        self._fb.seek(0)
        written = self._fb.write(frame)
        if written is not None and written != len(frame):
            raise OSError(errno.EIO, f"short write ({written} of {len(frame)} bytes)")

    def _restore(self) -> None:
        if self._last_frame is None:
            return
        try:
            self._write(self._last_frame)
            self._refresh()
        except OSError as e:
            logger.error("Could not restore the previous frame: %s", e)

    def _refresh(self) -> None:
        if not self._full_refresh or self._fb is None:
            return
        self._marker += 1
        update = _UPDATE_DATA.pack(
            0,
            0,
            self._spec.width,
            self._spec.height,
            WAVEFORM_MODE_GC16,
            UPDATE_MODE_FULL,
            self._marker,
            TEMP_USE_AMBIENT,
            0,
            0,
            0,
            *([0] * 7),
        )
        try:
            fcntl.ioctl(self._fb.fileno(), MXCFB_SEND_UPDATE, update)
        except OSError as e:
            logger.warning("Full refresh ioctl not supported by %s, disabling: %s", self._path, e)
            self._full_refresh = False

    def poll_input(self) -> Optional[InputEvent]:
        with self._lock:
            if not self._events:
                for fd, tracker in self._input_fds.items():
                    self._read_events(fd, tracker)
            return self._events.popleft() if self._events else None

    def _read_events(self, fd: int, tracker: _TouchTracker) -> None:
        try:
            data = os.read(fd, _INPUT_EVENT.size * 64)
        except BlockingIOError:
            return
        except OSError as e:
            logger.warning("Input device read failed: %s", e)
            return

        usable = len(data) - len(data) % _INPUT_EVENT.size
        for _sec, _usec, ev_type, code, value in _INPUT_EVENT.iter_unpack(data[:usable]):
            if ev_type == EV_KEY and value == KEY_PRESS:
                event = map_evdev_key(code)
                if event is not None:
                    self._events.append(event)
            elif ev_type == EV_ABS:
                if code == ABS_MT_POSITION_X:
                    tracker.x = value
                elif code == ABS_MT_POSITION_Y:
                    tracker.y = value
                elif code == ABS_MT_TRACKING_ID:
                    tap = tracker.tracking(value)
                    if tap is not None:
                        self._tap(*tap)
            elif ev_type == EV_SYN and code == SYN_REPORT:
                tracker.sync()

    def _tap(self, raw_x: int, raw_y: int) -> None:
        x, y = float(raw_x), float(raw_y)
        if self._touch_range is not None:
            x = raw_x * self._spec.width / self._touch_range[0]
            y = raw_y * self._spec.height / self._touch_range[1]
        if self._touch_invert[0]:
            x = self._spec.width - 1 - x
        if self._touch_invert[1]:
            y = self._spec.height - 1 - y
        event = map_tap(x, y, self._spec.width)
        if event is not None:
            self._events.append(event)

    def close(self) -> None:
        with self._lock:
            for fd in self._input_fds:
                try:
                    os.close(fd)
                except OSError as e:
                    logger.debug("Closing input device failed: %s", e)
            self._input_fds.clear()
            if self._fb is not None:
                try:
                    fcntl.flock(self._fb.fileno(), fcntl.LOCK_UN)
                finally:
                    self._fb.close()
                    self._fb = None
                self._release()
                logger.info("DeviceBackend released %s", self._path)

    def _release(self) -> None:
        with DeviceBackend._claim_lock:
            DeviceBackend._claimed.discard(self._key)

    def __enter__(self) -> "DeviceBackend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
