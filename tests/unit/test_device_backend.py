"""Tests for the framebuffer backend, using regular files as the device."""

import struct
from pathlib import Path

import pytest
from PIL import Image

from inkreader.display.device import (
    ABS_MT_POSITION_X,
    ABS_MT_POSITION_Y,
    ABS_MT_TRACKING_ID,
    EV_ABS,
    EV_KEY,
    EV_SYN,
    SYN_REPORT,
    DeviceBackend,
    encode_frame,
)
from inkreader.exceptions import DeviceIoError
from inkreader.models.input import NEXT, PREVIOUS
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec

pytestmark = pytest.mark.unit

INPUT_EVENT = struct.Struct("llHHi")
SPEC = SurfaceSpec(4, 2, ColorDepth.GRAYSCALE_8)


def surface(color: int) -> PixelSurface:
    return PixelSurface.from_image(Image.new("L", (SPEC.width, SPEC.height), color))


def event(ev_type: int, code: int, value: int) -> bytes:
    return INPUT_EVENT.pack(0, 0, ev_type, code, value)


@pytest.fixture
def framebuffer(tmp_path: Path) -> Path:
    path = tmp_path / "fb0"
    path.write_bytes(bytes(SPEC.width * SPEC.height * 2))
    return path


@pytest.fixture
def backend(framebuffer: Path):
    with DeviceBackend(framebuffer, SPEC, bpp=8) as device:
        yield device


class TestEncodeFrame:
    def test_encode_frame_when_8bpp_then_gray_bytes(self) -> None:
        assert encode_frame(surface(0x80), 8) == bytes([0x80]) * 8

    def test_encode_frame_when_16bpp_then_rgb565_little_endian(self) -> None:
        assert encode_frame(surface(255), 16) == b"\xff\xff" * 8
        assert encode_frame(surface(0), 16) == b"\x00\x00" * 8

    def test_encode_frame_when_stride_wider_then_rows_padded(self) -> None:
        frame = encode_frame(surface(255), 8, stride=6)

        assert frame == (b"\xff" * 4 + b"\x00\x00") * 2

    def test_encode_frame_when_stride_too_short_then_raises(self) -> None:
        with pytest.raises(ValueError, match="stride"):
            encode_frame(surface(255), 8, stride=3)

    def test_encode_frame_when_depth_unsupported_then_raises(self) -> None:
        with pytest.raises(ValueError, match="depth"):
            encode_frame(surface(255), 24)


class TestDeviceBackend:
    """Tests for DeviceBackend ownership and output."""

    def test_present_when_open_then_frame_written(self, backend: DeviceBackend, framebuffer: Path) -> None:
        backend.present(surface(0x40))

        assert framebuffer.read_bytes()[:8] == bytes([0x40]) * 8

    def test_present_when_size_mismatch_then_raises(self, backend: DeviceBackend) -> None:
        wrong = PixelSurface.from_image(Image.new("L", (3, 3), 0))

        with pytest.raises(ValueError, match="does not match"):
            backend.present(wrong)

    def test_init_when_already_claimed_then_raises(self, backend: DeviceBackend, framebuffer: Path) -> None:
        with pytest.raises(DeviceIoError, match="already owned"):
            DeviceBackend(framebuffer, SPEC, bpp=8)

    def test_close_when_called_then_framebuffer_reusable(self, framebuffer: Path) -> None:
        first = DeviceBackend(framebuffer, SPEC, bpp=8)
        first.close()
        first.close()

        with DeviceBackend(framebuffer, SPEC, bpp=8) as second:
            second.present(surface(0))

    def test_present_when_closed_then_raises(self, framebuffer: Path) -> None:
        device = DeviceBackend(framebuffer, SPEC, bpp=8)
        device.close()

        with pytest.raises(DeviceIoError, match="closed"):
            device.present(surface(0))

    def test_init_when_path_missing_then_raises(self, tmp_path: Path) -> None:
        with pytest.raises(DeviceIoError, match="Cannot open"):
            DeviceBackend(tmp_path / "missing", SPEC)

    def test_present_when_write_fails_then_previous_frame_restored(
        self, backend: DeviceBackend, framebuffer: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        backend.present(surface(0x10))
        original_write = backend._write
        attempts = []

        def failing_write(frame: bytes) -> None:
            attempts.append(frame)
            if len(attempts) == 1:
                raise OSError(5, "I/O error")
            original_write(frame)

        monkeypatch.setattr(backend, "_write", failing_write)

        with pytest.raises(DeviceIoError, match="write failed"):
            backend.present(surface(0x20))

        assert attempts == [bytes([0x20]) * 8, bytes([0x10]) * 8]
        assert framebuffer.read_bytes()[:8] == bytes([0x10]) * 8


class TestDeviceInput:
    """Tests for evdev input translation."""

    def test_poll_input_when_key_pressed_then_event(self, framebuffer: Path, tmp_path: Path) -> None:
        keys = tmp_path / "event0"
        keys.write_bytes(event(EV_KEY, 106, 1) + event(EV_KEY, 106, 0) + event(EV_KEY, 105, 1))

        with DeviceBackend(framebuffer, SPEC, bpp=8, input_devices=(keys,)) as device:
            assert device.poll_input() == NEXT
            assert device.poll_input() == PREVIOUS
            assert device.poll_input() is None

    def test_poll_input_when_touch_lifted_then_tap_at_touch_down(self, framebuffer: Path, tmp_path: Path) -> None:
        touch = tmp_path / "event1"
        touch.write_bytes(
            event(EV_ABS, ABS_MT_TRACKING_ID, 7)
            + event(EV_ABS, ABS_MT_POSITION_X, 100)
            + event(EV_ABS, ABS_MT_POSITION_Y, 50)
            + event(EV_SYN, SYN_REPORT, 0)
            + event(EV_ABS, ABS_MT_POSITION_X, 900)
            + event(EV_SYN, SYN_REPORT, 0)
            + event(EV_ABS, ABS_MT_TRACKING_ID, -1)
            + event(EV_SYN, SYN_REPORT, 0)
        )

        with DeviceBackend(
            framebuffer, SPEC, bpp=8, input_devices=(touch,), touch_range=(1000, 1000)
        ) as device:
            assert device.poll_input() == PREVIOUS
            assert device.poll_input() is None

    def test_init_when_input_device_missing_then_skipped(self, framebuffer: Path, tmp_path: Path) -> None:
        with DeviceBackend(framebuffer, SPEC, bpp=8, input_devices=(tmp_path / "nope",)) as device:
            assert device.poll_input() is None
