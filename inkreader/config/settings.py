"""Application settings with environment variable and YAML file support."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from inkreader.exceptions import ConfigurationError
from inkreader.models.layout import Margins, PageGeometry
from inkreader.models.surface import ColorDepth, SurfaceSpec

logger = logging.getLogger(__name__)

DEFAULT_FONTS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf"),
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf"),
]
DEFAULT_BOLD_FONTS = [Path("/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf")]
DEFAULT_ITALIC_FONTS = [Path("/usr/share/fonts/truetype/dejavu/DejaVuSerif-Italic.ttf")]
DEFAULT_MONOSPACE_FONTS = [Path("/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf")]


class DisplaySettings(BaseModel):
    """Output device configuration."""

    backend: Literal["device", "window"] = Field(
        default="window", description="Display backend: e-ink framebuffer device or desktop window"
    )
    width: int = Field(default=1404, gt=0, description="Surface width in pixels")
    height: int = Field(default=1872, gt=0, description="Surface height in pixels")
    color_depth: int = Field(
        default=1, description="Bits per pixel of rendered surfaces (1 = dithered bilevel)"
    )

    # Device backend
    framebuffer_path: Path = Field(default=Path("/dev/fb0"), description="Framebuffer device file")
    framebuffer_bpp: int = Field(default=16, description="Framebuffer bits per pixel")
    framebuffer_stride: Optional[int] = Field(
        default=None, description="Bytes per framebuffer row, width times bytes per pixel when unset"
    )
    full_refresh_ioctl: bool = Field(
        default=True, description="Request a full e-ink refresh after each frame"
    )
    input_devices: list[Path] = Field(
        default_factory=list, description="evdev device files for touch and buttons"
    )
    touch_max_x: Optional[int] = Field(
        default=None, description="Raw touch X range, None when raw coordinates are pixels"
    )
    touch_max_y: Optional[int] = Field(default=None, description="Raw touch Y range")
    touch_invert_x: bool = Field(default=False, description="Mirror raw touch X")
    touch_invert_y: bool = Field(default=False, description="Mirror raw touch Y")

    # Window backend
    window_scale: float = Field(default=0.5, gt=0, description="Preview window scale factor")
    window_title: str = Field(default="inkreader", description="Preview window title")

    show_status_screens: bool = Field(
        default=True, description="Show loading and error screens while rendering"
    )

    @field_validator("color_depth")
    @classmethod
    def validate_color_depth(cls, v: int) -> int:
        if v not in (1, 8):
            raise ValueError("color_depth must be 1 or 8")
        return v

    @field_validator("framebuffer_bpp")
    @classmethod
    def validate_framebuffer_bpp(cls, v: int) -> int:
        if v not in (8, 16):
            raise ValueError("framebuffer_bpp must be 8 or 16")
        return v

    @property
    def surface_spec(self) -> SurfaceSpec:
        return SurfaceSpec(self.width, self.height, ColorDepth(self.color_depth))


class RenderingSettings(BaseModel):
    """Typography and page layout configuration. Lengths are logical units."""

    font_size: float = Field(default=12, gt=0, description="Base font size")
    line_height: float = Field(default=1.2, gt=0, description="Line height as a multiple of font size")
    dpi_scale: float = Field(default=2.0, gt=0, description="Logical unit to pixel scale")
    margin_top: float = Field(default=100, ge=0)
    margin_right: float = Field(default=50, ge=0)
    margin_bottom: float = Field(default=50, ge=0)
    margin_left: float = Field(default=50, ge=0)
    block_spacing: float = Field(default=12, ge=0, description="Vertical gap between blocks")
    list_indent: float = Field(default=20, ge=0, description="Indent per list nesting level")
    fonts: list[Path] = Field(
        default_factory=lambda: list(DEFAULT_FONTS), description="Font cascade, first match wins"
    )
    bold_fonts: list[Path] = Field(default_factory=lambda: list(DEFAULT_BOLD_FONTS))
    italic_fonts: list[Path] = Field(default_factory=lambda: list(DEFAULT_ITALIC_FONTS))
    monospace_fonts: list[Path] = Field(default_factory=lambda: list(DEFAULT_MONOSPACE_FONTS))
    show_progress: bool = Field(default=True, description="Draw the page progress footer")
    show_header: bool = Field(default=True, description="Draw the page title or URL above the content")
    worker_threads: int = Field(default=2, ge=1, description="Render worker threads")

    def page_geometry(self, spec: SurfaceSpec) -> PageGeometry:
        """Build page geometry for a backend's surface.

        Args:
            spec: Surface dimensions reported by the display backend

        Returns:
            PageGeometry in device pixels with these typography settings
        """
        return PageGeometry(
            width=spec.width,
            height=spec.height,
            margins=Margins(
                top=self.margin_top,
                right=self.margin_right,
                bottom=self.margin_bottom,
                left=self.margin_left,
            ),
            base_font_size=self.font_size,
            dpi_scale=self.dpi_scale,
            line_height=self.line_height,
            block_spacing=self.block_spacing,
            list_indent=self.list_indent,
        )


class ServerSettings(BaseModel):
    """Ingestion HTTP server configuration."""

    enabled: bool = Field(default=True, description="Accept captures over HTTP")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, ge=0, le=65535, description="Bind port")
    max_body_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="Largest accepted capture")
    cors_allow_origin: str = Field(default="*", description="Access-Control-Allow-Origin value")
    fetch_images: bool = Field(default=True, description="Download page images before rendering")
    image_timeout: float = Field(default=10.0, gt=0, description="Per-image download timeout in seconds")
    max_image_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    max_images: int = Field(default=32, ge=0, description="Images fetched per capture")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Root log level")
    file: Optional[Path] = Field(default=None, description="Optional log file")
    third_party_level: str = Field(
        default="WARNING", description="Log level for PIL, aiohttp and asyncio"
    )

    @field_validator("level", "third_party_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class InkReaderSettings(BaseSettings):
    """Top-level settings.

    Values come from, in increasing priority: defaults, ``INKREADER_*``
    environment variables (nested fields use ``__``, e.g.
    ``INKREADER_SERVER__PORT``), and the YAML file passed to
    ``load_settings``.
    """

    model_config = SettingsConfigDict(
        env_prefix="INKREADER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    display: DisplaySettings = Field(default_factory=DisplaySettings)
    rendering: RenderingSettings = Field(default_factory=RenderingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(path: Optional[Path] = None, **overrides: Any) -> InkReaderSettings:
    """Build settings from the environment and an optional YAML file.

    Args:
        path: YAML configuration file
        **overrides: Top-level sections overriding file values

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file cannot be read or values are invalid
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            with Path(path).open(encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read configuration {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration {path} must be a mapping")
        data.update(loaded or {})
        logger.info("Loaded configuration from %s", path)
    data.update(overrides)

    try:
        return InkReaderSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
