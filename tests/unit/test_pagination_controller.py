"""Tests for the pagination state machine."""

import pytest
from conftest import RecordingBackend

from inkreader.models.input import ACTION_EXIT, ACTION_FIRST_PAGE, ACTION_LAST_PAGE, NEXT, PREVIOUS, InputEvent
from inkreader.models.job import RenderJob
from inkreader.models.layout import Page
from inkreader.models.pagination import Error, Idle, Ready, Rendering, RenderResult, describe_state
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec
from inkreader.pagination.controller import LOADING_MESSAGE, PaginationController

pytestmark = pytest.mark.unit


def make_surface(marker: int) -> PixelSurface:
    return PixelSurface(width=1, height=1, depth=ColorDepth.GRAYSCALE_8, data=bytes([marker]))


def make_result(job: RenderJob, count: int) -> RenderResult:
    return RenderResult(
        job_id=job.job_id,
        pages=tuple(Page(index=index, boxes=()) for index in range(count)),
        surfaces=tuple(make_surface(index) for index in range(count)),
    )


def status_surface(message: str, spec: SurfaceSpec) -> PixelSurface:
    return PixelSurface(width=1, height=1, depth=ColorDepth.GRAYSCALE_8, data=message.encode()[:1] or b"?")


@pytest.fixture
def controller(recording_backend: RecordingBackend) -> PaginationController:
    return PaginationController(recording_backend)


def ready_controller(controller: PaginationController, count: int) -> RenderJob:
    job = RenderJob("https://example.com/", "<p>x</p>")
    controller.submit(job)
    controller.complete(job.job_id, make_result(job, count))
    return job


class TestLifecycle:
    """Tests for submit, complete and fail."""

    def test_snapshot_when_new_then_idle(self, controller: PaginationController) -> None:
        assert controller.snapshot() == Idle()
        assert describe_state(controller.snapshot()) == {"state": "idle"}

    def test_complete_when_latest_then_ready_on_first_page(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        job = RenderJob("https://example.com/", "<p>x</p>")
        controller.submit(job)
        assert controller.snapshot() == Rendering(job.job_id)

        applied = controller.complete(job.job_id, make_result(job, 3))

        state = controller.snapshot()
        assert applied
        assert isinstance(state, Ready)
        assert (state.job_id, state.current_index, state.page_count) == (job.job_id, 0, 3)
        assert recording_backend.presented == [make_surface(0)]

    def test_complete_when_superseded_then_discarded(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        first = RenderJob("https://example.com/1", "<p>1</p>")
        second = RenderJob("https://example.com/2", "<p>2</p>")
        controller.submit(first)
        controller.submit(second)

        assert controller.complete(first.job_id, make_result(first, 2)) is False
        assert controller.snapshot() == Rendering(second.job_id)
        assert controller.fail(first.job_id, "late failure") is False
        assert controller.snapshot() == Rendering(second.job_id)

        assert controller.complete(second.job_id, make_result(second, 1))
        assert controller.snapshot().job_id == second.job_id
        assert recording_backend.presented == [make_surface(0)]

    def test_complete_when_no_surfaces_then_error(self, controller: PaginationController) -> None:
        job = RenderJob("https://example.com/", "")
        controller.submit(job)

        controller.complete(job.job_id, make_result(job, 0))

        assert controller.snapshot() == Error(job.job_id, "Render produced no pages")

    def test_complete_when_applied_twice_then_second_discarded(self, controller: PaginationController) -> None:
        job = ready_controller(controller, 2)

        assert controller.complete(job.job_id, make_result(job, 5)) is False
        assert controller.snapshot().page_count == 2

    def test_fail_when_latest_then_error_state(self, controller: PaginationController) -> None:
        job = RenderJob("https://example.com/", "<p>x</p>")
        controller.submit(job)

        assert controller.fail(job.job_id, "boom")
        assert controller.snapshot() == Error(job.job_id, "boom")
        assert describe_state(controller.snapshot()) == {"state": "error", "job_id": job.job_id, "reason": "boom"}

    def test_submit_when_ready_then_old_pages_unreachable(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        ready_controller(controller, 3)
        newer = RenderJob("https://example.com/next", "<p>y</p>")

        controller.submit(newer)
        controller.handle_input(NEXT)

        assert controller.snapshot() == Rendering(newer.job_id)
        assert len(recording_backend.presented) == 1


class TestNavigation:
    """Tests for handle_input."""

    def test_handle_input_when_next_then_one_present_per_page(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        ready_controller(controller, 3)

        controller.handle_input(NEXT)
        controller.handle_input(NEXT)

        assert controller.snapshot().current_index == 2
        assert recording_backend.presented == [make_surface(0), make_surface(1), make_surface(2)]

    def test_handle_input_when_past_last_page_then_clamped_without_present(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        ready_controller(controller, 2)

        for _ in range(5):
            controller.handle_input(NEXT)

        assert controller.snapshot().current_index == 1
        assert len(recording_backend.presented) == 2

    def test_handle_input_when_previous_on_first_page_then_unchanged(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        ready_controller(controller, 2)

        controller.handle_input(PREVIOUS)

        assert controller.snapshot().current_index == 0
        assert len(recording_backend.presented) == 1

    def test_handle_input_when_first_and_last_actions_then_jump(self, controller: PaginationController) -> None:
        ready_controller(controller, 5)

        controller.handle_input(InputEvent.custom(ACTION_LAST_PAGE))
        assert controller.snapshot().current_index == 4

        controller.handle_input(InputEvent.custom(ACTION_FIRST_PAGE))
        assert controller.snapshot().current_index == 0

    def test_handle_input_when_rendering_then_ignored(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        job = RenderJob("https://example.com/", "<p>x</p>")
        controller.submit(job)

        controller.handle_input(NEXT)

        assert controller.snapshot() == Rendering(job.job_id)
        assert recording_backend.presented == []

    def test_handle_input_when_present_fails_then_error_and_retry_recovers(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        job = ready_controller(controller, 3)
        recording_backend.fail_presents = 1

        controller.handle_input(NEXT)

        state = controller.snapshot()
        assert isinstance(state, Error)
        assert state.job_id == job.job_id
        assert "simulated write failure" in state.reason

        controller.handle_input(NEXT)

        state = controller.snapshot()
        assert isinstance(state, Ready)
        assert state.current_index == 1
        assert recording_backend.presented == [make_surface(0), make_surface(1)]

    def test_handle_input_when_present_fails_then_previous_moves_from_shown_page(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        ready_controller(controller, 3)
        controller.handle_input(NEXT)
        recording_backend.fail_presents = 1

        controller.handle_input(NEXT)
        assert isinstance(controller.snapshot(), Error)

        controller.handle_input(PREVIOUS)

        state = controller.snapshot()
        assert isinstance(state, Ready)
        assert state.current_index == 0
        assert recording_backend.presented == [make_surface(0), make_surface(1), make_surface(0)]

    def test_handle_input_when_first_present_failed_then_retries_first_page(
        self, controller: PaginationController, recording_backend: RecordingBackend
    ) -> None:
        recording_backend.fail_presents = 1
        job = ready_controller(controller, 3)
        assert isinstance(controller.snapshot(), Error)

        controller.handle_input(NEXT)

        state = controller.snapshot()
        assert isinstance(state, Ready)
        assert (state.job_id, state.current_index) == (job.job_id, 0)
        assert recording_backend.presented == [make_surface(0)]

    def test_handle_input_when_custom_action_registered_then_called(self, controller: PaginationController) -> None:
        calls = []
        controller.register_action(ACTION_EXIT, lambda: calls.append("exit"))

        controller.handle_input(InputEvent.custom(ACTION_EXIT))
        controller.handle_input(InputEvent.custom("unbound"))

        assert calls == ["exit"]


class TestStatusScreens:
    """Tests for loading and error screens."""

    def test_submit_when_status_screens_enabled_then_loading_presented(
        self, recording_backend: RecordingBackend
    ) -> None:
        messages = []

        def renderer(message: str, spec: SurfaceSpec) -> PixelSurface:
            messages.append(message)
            return status_surface(message, spec)

        controller = PaginationController(recording_backend, status_renderer=renderer)
        job = RenderJob("https://example.com/", "<p>x</p>")

        controller.submit(job)
        controller.fail(job.job_id, "bad markup")

        assert messages == [LOADING_MESSAGE, "Could not render page\n\nbad markup"]
        assert len(recording_backend.presented) == 2

    def test_submit_when_status_screens_disabled_then_nothing_presented(
        self, recording_backend: RecordingBackend
    ) -> None:
        controller = PaginationController(recording_backend, status_surface, show_status_screens=False)

        controller.submit(RenderJob("https://example.com/", "<p>x</p>"))

        assert recording_backend.presented == []

    def test_submit_when_status_present_fails_then_still_rendering(self, recording_backend: RecordingBackend) -> None:
        controller = PaginationController(recording_backend, status_surface)
        recording_backend.fail_presents = 1
        job = RenderJob("https://example.com/", "<p>x</p>")

        controller.submit(job)

        assert controller.snapshot() == Rendering(job.job_id)
