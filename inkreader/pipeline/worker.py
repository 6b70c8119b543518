"""Background render worker.

Runs the blocking pipeline stages on a thread pool so the ingestion server's
event loop never waits on rendering. Results are applied to the pagination
controller back on the event loop thread, so every present happens on the
thread that owns the display. The controller drops superseded results.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import TYPE_CHECKING, Optional

from inkreader.models.job import RenderJob
from inkreader.pagination.controller import PaginationController
from inkreader.pipeline.render_pipeline import RenderPipeline
from inkreader.utils.logging import job_context

if TYPE_CHECKING:
    from inkreader.ingestion.image_fetcher import ImageFetcher

logger = logging.getLogger(__name__)


class RenderWorker:
    """Thread pool that renders jobs and applies their results."""

    def __init__(
        self,
        pipeline: RenderPipeline,
        controller: PaginationController,
        max_workers: int = 2,
        image_fetcher: Optional["ImageFetcher"] = None,
    ) -> None:
        """Start the worker threads.

        Args:
            pipeline: Stages to run for each job
            controller: Receives finished results and failures
            max_workers: Number of render threads
            image_fetcher: Downloads referenced images before layout
        """
        self._pipeline = pipeline
        self._controller = controller
        self._fetcher = image_fetcher
        self._max_workers = max_workers
        self._lock = threading.Lock()
        self._is_shutdown = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="inkreader-render"
        )
        logger.info("Initialized render worker with max_workers=%d", max_workers)

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def pending(self) -> int:
        """Number of scheduled jobs that have not finished yet."""
        return len(self._tasks)

    def schedule(self, job: RenderJob) -> asyncio.Task[None]:
        """Start rendering a job on the running event loop without waiting.

        Args:
            job: Job already submitted to the controller

        Returns:
            Task completing once the result has been applied or dropped

        Raises:
            RuntimeError: If the worker is shut down or no loop is running
        """
        if self._is_shutdown:
            raise RuntimeError("Render worker is shut down")
        task = asyncio.get_running_loop().create_task(self.process(job), name=f"render-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process(self, job: RenderJob) -> None:
        """Render one job and report the outcome to the controller.

        Errors never propagate; they become a failure of this job only.

        Args:
            job: Job to render
        """
        loop = asyncio.get_running_loop()
        try:
            extracted = await loop.run_in_executor(self._executor, self._pipeline.extract, job)

            images: dict[str, bytes] = {}
            if self._fetcher is not None and extracted.image_urls:
                if self._controller.is_latest(job.job_id):
                    with job_context(job.job_id):
                        images = await self._fetcher.fetch_all(extracted.image_urls)

            result = await loop.run_in_executor(
                self._executor, self._pipeline.render, job, extracted, images
            )
        except Exception as e:
            with job_context(job.job_id):
                logger.exception("Render job failed")
            reason = str(e) or type(e).__name__
            self._controller.fail(job.job_id, reason)
            return

        self._controller.complete(job.job_id, result)

    async def drain(self) -> None:
        """Wait for all scheduled jobs to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the thread pool.

        Args:
            wait: Whether to wait for running stages to complete
        """
        with self._lock:
            if self._is_shutdown:
                return
            logger.info("Shutting down render worker")
            for task in list(self._tasks):
                task.cancel()
            self._executor.shutdown(wait=wait)
            self._is_shutdown = True
