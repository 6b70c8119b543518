"""Render pipeline: extraction, parsing, layout and rasterization for one job."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Optional

from inkreader.extraction.extractor import ContentExtractor, ExtractedContent
from inkreader.layout.engine import LayoutEngine
from inkreader.models.job import RenderJob
from inkreader.models.layout import PageGeometry
from inkreader.models.pagination import RenderResult
from inkreader.models.surface import SurfaceSpec
from inkreader.parsing.markdown_parser import MarkdownParser
from inkreader.rendering.images import ImageStore
from inkreader.rendering.rasterizer import Rasterizer
from inkreader.utils.logging import job_context

logger = logging.getLogger(__name__)


class RenderPipeline:
    """Runs the stages of a render job.

    The stages share no mutable state except the shaper's glyph cache, so
    several jobs may run through one pipeline concurrently.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        parser: MarkdownParser,
        layout_engine: LayoutEngine,
        rasterizer: Rasterizer,
        geometry: PageGeometry,
        spec: SurfaceSpec,
    ) -> None:
        self._extractor = extractor
        self._parser = parser
        self._layout = layout_engine
        self._rasterizer = rasterizer
        self._geometry = geometry
        self._spec = spec

    def extract(self, job: RenderJob) -> ExtractedContent:
        """Normalize the job's markup.

        Args:
            job: Pending job

        Returns:
            ExtractedContent with Markdown text and referenced image URLs
        """
        with job_context(job.job_id):
            job.mark_processing()
            try:
                return self._extractor.extract(job.markup, job.source_url)
            except Exception as e:
                job.mark_failed(str(e) or type(e).__name__)
                raise

    def render(
        self,
        job: RenderJob,
        extracted: ExtractedContent,
        images: Optional[Mapping[str, bytes]] = None,
    ) -> RenderResult:
        """Parse, lay out and rasterize extracted content.

        Args:
            job: Job in the processing state
            extracted: Output of ``extract``
            images: Encoded image bytes keyed by absolute URL

        Returns:
            RenderResult with one surface per page

        Raises:
            Exception: Any stage error; the job is marked failed first
        """
        with job_context(job.job_id):
            started = time.monotonic()
            try:
                parsed = self._parser.parse(extracted.markup)
                for warning in parsed.warnings:
                    logger.warning("Parse warning at %s", warning)

                store = ImageStore(images or {})
                header = extracted.title or job.source_url
                layout = self._layout.layout(parsed.document, self._geometry, store, header=header)
                for warning in layout.warnings:
                    logger.warning("Layout warning: %s", warning)

                surfaces = tuple(
                    self._rasterizer.rasterize(page, self._spec, store) for page in layout.pages
                )
            except Exception as e:
                job.mark_failed(str(e) or type(e).__name__)
                raise

            job.mark_ready()
            logger.info(
                "Rendered %d pages in %.2fs", len(surfaces), time.monotonic() - started
            )
            return RenderResult(
                job_id=job.job_id,
                pages=layout.pages,
                surfaces=surfaces,
                warnings=tuple(parsed.warnings) + tuple(layout.warnings),
            )

    def run(self, job: RenderJob, images: Optional[Mapping[str, bytes]] = None) -> RenderResult:
        """Extract and render a job in one call."""
        return self.render(job, self.extract(job), images)
