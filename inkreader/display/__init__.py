"""Display backends.

Backend modules import their platform libraries, so they are loaded lazily
by ``create_backend``.
"""

from inkreader.display.backend import BackendKind, DisplayBackend, create_backend

__all__ = ["BackendKind", "DisplayBackend", "create_backend"]
