"""Pagination state machine.

The controller is the only writer of the pagination state. Job submission,
render completion and navigation all go through one re-entrant lock, and each
transition that changes the current page presents that page exactly once.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from inkreader.display.backend import DisplayBackend
from inkreader.exceptions import DeviceIoError
from inkreader.models.input import (
    ACTION_FIRST_PAGE,
    ACTION_LAST_PAGE,
    InputEvent,
    InputKind,
)
from inkreader.models.job import RenderJob
from inkreader.models.layout import Page
from inkreader.models.pagination import (
    Error,
    Idle,
    PaginationState,
    Ready,
    Rendering,
    RenderResult,
)
from inkreader.models.surface import PixelSurface, SurfaceSpec

logger = logging.getLogger(__name__)

StatusRenderer = Callable[[str, SurfaceSpec], PixelSurface]
ActionHandler = Callable[[], None]

LOADING_MESSAGE = "Loading…"


class PaginationController:
    """Coordinates job arrival, render results, navigation and presentation."""

    def __init__(
        self,
        backend: DisplayBackend,
        status_renderer: Optional[StatusRenderer] = None,
        show_status_screens: bool = True,
    ) -> None:
        """Initialize the controller in the Idle state.

        Args:
            backend: Display backend pages are presented on
            status_renderer: Draws loading and error screens
            show_status_screens: Present status screens on submit and failure
        """
        self._backend = backend
        self._status_renderer = status_renderer
        self._show_status = show_status_screens and status_renderer is not None
        self._lock = threading.RLock()
        self._state: PaginationState = Idle()
        self._latest_job_id: Optional[str] = None
        # Pages survive an Error caused by the display so navigation can retry
        self._pages: tuple[Page, ...] = ()
        self._surfaces: tuple[PixelSurface, ...] = ()
        # Last page that reached the panel, None until one of the job's pages has
        self._index: Optional[int] = None
        self._actions: dict[str, ActionHandler] = {}

    @property
    def latest_job_id(self) -> Optional[str]:
        with self._lock:
            return self._latest_job_id

    def snapshot(self) -> PaginationState:
        """Return the current state. States are immutable values."""
        with self._lock:
            return self._state

    def register_action(self, action_id: str, handler: ActionHandler) -> None:
        """Bind a custom action id to a handler.

        Args:
            action_id: Custom action identifier
            handler: Called with no arguments when the action arrives
        """
        with self._lock:
            self._actions[action_id] = handler

    def is_latest(self, job_id: str) -> bool:
        with self._lock:
            return job_id == self._latest_job_id

    def submit(self, job: RenderJob) -> None:
        """Make a job the latest one and enter Rendering.

        Any previous pages become unreachable.

        Args:
            job: Newly created render job
        """
        with self._lock:
            if self._latest_job_id is not None and self._latest_job_id != job.job_id:
                logger.info("Job %s supersedes job %s", job.job_id, self._latest_job_id)
            self._latest_job_id = job.job_id
            self._pages = ()
            self._surfaces = ()
            self._index = None
            self._state = Rendering(job.job_id)
            logger.info("Rendering job %s from %s", job.job_id, job.source_url)
            if self._show_status:
                self._present_status(LOADING_MESSAGE)

    def complete(self, job_id: str, result: RenderResult) -> bool:
        """Apply a finished render if it belongs to the latest job.

        Args:
            job_id: Job the result was rendered for
            result: Pages and surfaces of the job

        Returns:
            True if the result was applied, False if it was discarded
        """
        with self._lock:
            if not self._accepts(job_id):
                logger.info("Discarding result of superseded job %s", job_id)
                return False
            if not result.surfaces:
                self._state = Error(job_id, "Render produced no pages")
                logger.error("Job %s produced no pages", job_id)
                return True
            self._pages = result.pages
            self._surfaces = result.surfaces
            self._show(job_id, 0)
            logger.info("Job %s ready with %d pages", job_id, len(result.pages))
            return True

    def fail(self, job_id: str, reason: str) -> bool:
        """Record a render failure if it belongs to the latest job.

        Returns:
            True if the failure was applied, False if it was discarded
        """
        with self._lock:
            if not self._accepts(job_id):
                logger.info("Discarding failure of superseded job %s: %s", job_id, reason)
                return False
            self._state = Error(job_id, reason)
            logger.error("Job %s failed: %s", job_id, reason)
            if self._show_status:
                self._present_status(f"Could not render page\n\n{reason}")
            return True

    def _accepts(self, job_id: str) -> bool:
        return job_id == self._latest_job_id and isinstance(self._state, Rendering)

    def handle_input(self, event: InputEvent) -> None:
        """Apply a navigation event or dispatch a custom action.

        Navigation outside Ready (or an Error with retained pages) is ignored.
        Out-of-range requests clamp to the first or last page.

        Args:
            event: Input event from the backend or the HTTP API
        """
        with self._lock:
            if event.kind is InputKind.NEXT:
                self._navigate(lambda index, count: min(index + 1, count - 1))
            elif event.kind is InputKind.PREVIOUS:
                self._navigate(lambda index, count: max(index - 1, 0))
            elif event.action_id == ACTION_FIRST_PAGE:
                self._navigate(lambda index, count: 0)
            elif event.action_id == ACTION_LAST_PAGE:
                self._navigate(lambda index, count: count - 1)
            else:
                handler = self._actions.get(event.action_id or "")
                if handler is None:
                    logger.debug("Dropping unhandled action %s", event.action_id)
                    return
                handler()

    def _navigate(self, target: Callable[[int, int], int]) -> None:
        state = self._state
        if not self._surfaces or not isinstance(state, (Ready, Error)):
            logger.debug("Ignoring navigation in state %s", type(state).__name__)
            return
        # after a failed present the panel still shows the last good page, so
        # navigation moves from there; a job never shown retries its first page
        index = 0 if self._index is None else target(self._index, len(self._surfaces))
        if isinstance(state, Ready) and index == self._index:
            return
        self._show(state.job_id, index)

    def _show(self, job_id: str, index: int) -> None:
        try:
            self._backend.present(self._surfaces[index])
        except DeviceIoError as e:
            logger.error("Presenting page %d of job %s failed: %s", index + 1, job_id, e)
            self._state = Error(job_id, str(e))
            return
        self._index = index
        self._state = Ready(job_id, self._pages, self._surfaces, index)
        logger.debug("Showing page %d/%d", index + 1, len(self._surfaces))

    def _present_status(self, message: str) -> None:
        assert self._status_renderer is not None
        try:
            surface = self._status_renderer(message, self._backend.surface_spec())
            self._backend.present(surface)
        except DeviceIoError as e:
            logger.warning("Could not present status screen: %s", e)
