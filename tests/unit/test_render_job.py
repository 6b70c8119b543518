"""Tests for the render job lifecycle."""

import pytest

from inkreader.exceptions import JobStateError
from inkreader.models.job import JobStatus, RenderJob

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestRenderJob:
    def test_init_when_created_then_pending_with_unique_id(self) -> None:
        first = RenderJob("https://example.com/", "<p>a</p>")
        second = RenderJob("https://example.com/", "<p>a</p>")

        assert first.status is JobStatus.PENDING
        assert first.job_id != second.job_id
        assert first.created_at.tzinfo is not None

    def test_mark_ready_when_processing_then_ready(self) -> None:
        job = RenderJob("https://example.com/", "", job_id="job-1")

        job.mark_processing()
        job.mark_ready()

        assert job.status is JobStatus.READY
        assert job.job_id == "job-1"

    def test_mark_failed_when_pending_then_failed_with_reason(self) -> None:
        job = RenderJob("https://example.com/", "")

        job.mark_failed("could not decode")

        assert job.status is JobStatus.FAILED
        assert job.failure_reason == "could not decode"

    def test_mark_processing_when_ready_then_raises(self) -> None:
        job = RenderJob("https://example.com/", "")
        job.mark_processing()
        job.mark_ready()

        with pytest.raises(JobStateError, match="already ready"):
            job.mark_processing()

    def test_mark_failed_when_ready_then_raises(self) -> None:
        job = RenderJob("https://example.com/", "")
        job.mark_processing()
        job.mark_ready()

        with pytest.raises(JobStateError):
            job.mark_failed("late")
        assert job.status is JobStatus.READY

    def test_mark_processing_when_repeated_then_raises(self) -> None:
        job = RenderJob("https://example.com/", "")
        job.mark_processing()

        with pytest.raises(JobStateError, match="cannot move"):
            job.mark_processing()
