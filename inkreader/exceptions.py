"""Exceptions and non-fatal warning records for the rendering pipeline."""

from __future__ import annotations

from dataclasses import dataclass


class InkReaderError(Exception):
    """Base exception for all inkreader errors."""


class ExtractionError(InkReaderError):
    """Raised when a captured page cannot be decoded into text."""


class DeviceIoError(InkReaderError):
    """Raised when a display backend fails to write to its output."""


class JobStateError(InkReaderError):
    """Raised when a render job status would move backwards."""


class ConfigurationError(InkReaderError):
    """Raised when settings cannot be turned into a working configuration."""


@dataclass(frozen=True)
class ParseWarning:
    """Recoverable markup defect found while parsing."""

    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"line {self.line}, column {self.column}: {self.message}"


@dataclass(frozen=True)
class LayoutOverflow:
    """An atomic box did not fit on an empty page and was shrunk."""

    block: str
    requested_height: int
    available_height: int

    def __str__(self) -> str:
        return (
            f"{self.block} of height {self.requested_height}px shrunk to "
            f"fit {self.available_height}px"
        )


@dataclass(frozen=True)
class ShapingFallbackExhausted:
    """No font in the cascade covers a character; a placeholder was drawn."""

    char: str

    def __str__(self) -> str:
        return f"no font covers U+{ord(self.char):04X}"
