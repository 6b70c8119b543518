"""Pagination state values owned by the pagination controller."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from inkreader.models.layout import Page
from inkreader.models.surface import PixelSurface


@dataclass(frozen=True)
class RenderResult:
    """Output of one pipeline run: pages and their rasterized surfaces."""

    job_id: str
    pages: tuple[Page, ...]
    surfaces: tuple[PixelSurface, ...]
    warnings: tuple[object, ...] = ()


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Rendering:
    job_id: str


@dataclass(frozen=True)
class Ready:
    job_id: str
    pages: tuple[Page, ...]
    surfaces: tuple[PixelSurface, ...]
    current_index: int

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass(frozen=True)
class Error:
    job_id: str
    reason: str


PaginationState = Union[Idle, Rendering, Ready, Error]


def describe_state(state: PaginationState) -> dict[str, object]:
    """Serialize a state snapshot for the status API.

    Args:
        state: Pagination state

    Returns:
        JSON-compatible dictionary
    """
    if isinstance(state, Rendering):
        return {"state": "rendering", "job_id": state.job_id}
    if isinstance(state, Ready):
        return {
            "state": "ready",
            "job_id": state.job_id,
            "current_index": state.current_index,
            "page_count": state.page_count,
        }
    if isinstance(state, Error):
        return {"state": "error", "job_id": state.job_id, "reason": state.reason}
    return {"state": "idle"}


