"""Render job model."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from enum import Enum

from inkreader.exceptions import JobStateError


class JobStatus(Enum):
    """Lifecycle of a render job. Order of members is the only allowed order."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.READY: 2,
    JobStatus.FAILED: 2,
}


class RenderJob:
    """One request to convert a captured page into displayable pages."""

    def __init__(self, source_url: str, markup: str, job_id: str | None = None) -> None:
        """Create a pending job.

        Args:
            source_url: URL the page was captured from
            markup: Decoded page HTML
            job_id: Explicit identifier, a fresh uuid4 hex string when omitted
        """
        self.job_id = job_id or uuid.uuid4().hex
        self.source_url = source_url
        self.markup = markup
        self.created_at = datetime.now(timezone.utc)
        self.failure_reason: str | None = None
        self._status = JobStatus.PENDING
        self._lock = threading.Lock()

    @property
    def status(self) -> JobStatus:
        return self._status

    def mark_processing(self) -> None:
        self._advance(JobStatus.PROCESSING)

    def mark_ready(self) -> None:
        self._advance(JobStatus.READY)

    def mark_failed(self, reason: str) -> None:
        with self._lock:
            self._check(JobStatus.FAILED)
            self.failure_reason = reason
            self._status = JobStatus.FAILED

    def _advance(self, status: JobStatus) -> None:
        with self._lock:
            self._check(status)
            self._status = status

    def _check(self, status: JobStatus) -> None:
        if self._status in (JobStatus.READY, JobStatus.FAILED):
            raise JobStateError(
                f"Job {self.job_id} is already {self._status.value}, cannot become {status.value}"
            )
        if _STATUS_RANK[status] <= _STATUS_RANK[self._status]:
            raise JobStateError(
                f"Job {self.job_id} cannot move from {self._status.value} to {status.value}"
            )

    def __repr__(self) -> str:
        return (
            f"RenderJob(job_id={self.job_id!r}, source_url={self.source_url!r}, "
            f"status={self._status.value})"
        )
