"""Configuration."""

from inkreader.config.settings import InkReaderSettings, load_settings

__all__ = ["InkReaderSettings", "load_settings"]
