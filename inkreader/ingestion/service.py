"""Accepts captured pages and turns them into render jobs."""

from __future__ import annotations

import logging
from typing import Optional

from inkreader.extraction.extractor import ContentExtractor
from inkreader.models.job import RenderJob
from inkreader.pagination.controller import PaginationController
from inkreader.pipeline.worker import RenderWorker

logger = logging.getLogger(__name__)


class IngestionService:
    """Boundary between the capture API and the render pipeline."""

    def __init__(
        self,
        extractor: ContentExtractor,
        controller: PaginationController,
        worker: RenderWorker,
    ) -> None:
        self._extractor = extractor
        self._controller = controller
        self._worker = worker

    def accept(self, raw: bytes, source_url: str, charset: Optional[str] = None) -> RenderJob:
        """Create a render job for a capture and start rendering it.

        Decoding happens before the job exists, so undecodable captures are
        rejected to the caller without touching the displayed pages. Must be
        called from the event loop thread; rendering runs in the background.

        Args:
            raw: Captured HTML bytes
            source_url: URL of the captured page
            charset: Charset declared by the client

        Returns:
            The submitted job

        Raises:
            ExtractionError: If the bytes cannot be decoded
        """
        markup = self._extractor.decode(raw, charset)
        job = RenderJob(source_url=source_url, markup=markup)
        logger.info("Accepted capture of %s (%d bytes) as job %s", source_url, len(raw), job.job_id)
        self._controller.submit(job)
        self._worker.schedule(job)
        return job
