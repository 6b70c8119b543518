"""Application wiring and main loop.

All long-lived components are built once from the settings and owned by an
``AppContext``. Teardown stops the capture server, shuts the render worker
down and releases the display handle.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Optional

from inkreader.config.settings import InkReaderSettings
from inkreader.display.backend import DisplayBackend, create_backend
from inkreader.exceptions import DeviceIoError
from inkreader.extraction.extractor import ContentExtractor
from inkreader.ingestion.image_fetcher import ImageFetcher
from inkreader.ingestion.server import IngestionServer, make_app
from inkreader.ingestion.service import IngestionService
from inkreader.layout.engine import LayoutEngine
from inkreader.models.input import ACTION_EXIT
from inkreader.pagination.controller import PaginationController
from inkreader.parsing.markdown_parser import MarkdownParser
from inkreader.pipeline.render_pipeline import RenderPipeline
from inkreader.pipeline.worker import RenderWorker
from inkreader.rendering.rasterizer import Rasterizer
from inkreader.text.shaper import TextShaper

logger = logging.getLogger(__name__)

# Seconds between input polls when nothing is pending
POLL_INTERVAL = 0.05
WELCOME_MESSAGE = "inkreader\n\nSend a page to {host}:{port}/render"


class AppContext:
    """Owns every component of a running reader."""

    def __init__(
        self,
        settings: InkReaderSettings,
        backend: DisplayBackend,
        shaper: TextShaper,
        rasterizer: Rasterizer,
        controller: PaginationController,
        worker: RenderWorker,
        service: IngestionService,
        server: Optional[IngestionServer] = None,
        image_fetcher: Optional[ImageFetcher] = None,
    ) -> None:
        self.settings = settings
        self.backend = backend
        self.shaper = shaper
        self.rasterizer = rasterizer
        self.controller = controller
        self.worker = worker
        self.service = service
        self.server = server
        self.image_fetcher = image_fetcher
        self.running = False
        self._closed = False
        controller.register_action(ACTION_EXIT, self.stop)

    @classmethod
    def from_settings(
        cls, settings: InkReaderSettings, backend: Optional[DisplayBackend] = None
    ) -> "AppContext":
        """Build all components.

        Args:
            settings: Validated settings
            backend: Already open backend, opened from the settings when None

        Returns:
            AppContext ready to ``run``

        Raises:
            DeviceIoError: If the display backend cannot be opened
        """
        rendering = settings.rendering
        shaper = TextShaper.from_font_files(
            regular=rendering.fonts,
            bold=rendering.bold_fonts,
            italic=rendering.italic_fonts,
            monospace=rendering.monospace_fonts,
        )
        if backend is None:
            backend = create_backend(settings.display)
        spec = backend.surface_spec()
        rasterizer = Rasterizer(shaper)
        controller = PaginationController(
            backend,
            status_renderer=rasterizer.status_screen,
            show_status_screens=settings.display.show_status_screens,
        )
        extractor = ContentExtractor()
        pipeline = RenderPipeline(
            extractor=extractor,
            parser=MarkdownParser(),
            layout_engine=LayoutEngine(
                shaper, show_progress=rendering.show_progress, show_header=rendering.show_header
            ),
            rasterizer=rasterizer,
            geometry=rendering.page_geometry(spec),
            spec=spec,
        )

        server_settings = settings.server
        image_fetcher = None
        if server_settings.fetch_images:
            image_fetcher = ImageFetcher(
                timeout=server_settings.image_timeout,
                max_bytes=server_settings.max_image_bytes,
                max_images=server_settings.max_images,
            )
        worker = RenderWorker(
            pipeline,
            controller,
            max_workers=rendering.worker_threads,
            image_fetcher=image_fetcher,
        )
        service = IngestionService(extractor, controller, worker)

        server = None
        if server_settings.enabled:
            app = make_app(
                service,
                controller,
                max_body_bytes=server_settings.max_body_bytes,
                cors_allow_origin=server_settings.cors_allow_origin,
            )
            server = IngestionServer(app, host=server_settings.host, port=server_settings.port)

        logger.info(
            "Reader initialized: %dx%d %d-bit surfaces, server %s",
            spec.width,
            spec.height,
            spec.depth.value,
            f"on {server_settings.host}:{server_settings.port}" if server else "disabled",
        )
        return cls(
            settings, backend, shaper, rasterizer, controller, worker, service, server, image_fetcher
        )

    async def run(self, initial_file: Optional[Path] = None) -> None:
        """Serve captures and poll input until stopped.

        Args:
            initial_file: Local HTML file to render at startup
        """
        self.running = True
        if self.server is not None:
            await self.server.start()
        self._show_welcome()
        if initial_file is not None:
            self.open_file(initial_file)

        logger.info("Starting input loop")
        try:
            while self.running:
                event = self.backend.poll_input()
                if event is None:
                    await asyncio.sleep(POLL_INTERVAL)
                    continue
                logger.debug("Input event %s", event)
                self.controller.handle_input(event)
        finally:
            logger.info("Input loop stopped")

    def open_file(self, path: Path) -> None:
        """Render a local HTML file as if it had been captured.

        Raises:
            ExtractionError: If the file cannot be decoded
        """
        raw = Path(path).read_bytes()
        self.service.accept(raw, Path(path).resolve().as_uri())

    def _show_welcome(self) -> None:
        if not self.settings.display.show_status_screens:
            return
        message = "inkreader"
        if self.server is not None:
            message = WELCOME_MESSAGE.format(host=self.settings.server.host, port=self.server.port)
        try:
            self.backend.present(self.rasterizer.status_screen(message, self.backend.surface_spec()))
        except DeviceIoError as e:
            logger.warning("Could not present welcome screen: %s", e)

    def stop(self) -> None:
        if self.running:
            logger.info("Stop requested")
        self.running = False

    async def shutdown(self) -> None:
        """Release everything in reverse order of construction."""
        if self._closed:
            return
        self._closed = True
        self.running = False
        logger.info("Shutting down...")
        if self.server is not None:
            await self.server.stop()
        self.worker.shutdown(wait=False)
        if self.image_fetcher is not None:
            await self.image_fetcher.close()
        self.backend.close()
        logger.info("Shutdown complete")


async def run_app(settings: InkReaderSettings, initial_file: Optional[Path] = None) -> None:
    """Run the reader until a signal or the exit action stops it."""
    context = AppContext.from_settings(settings)
    loop = asyncio.get_running_loop()

    def signal_handler(sig: Any) -> None:
        logger.info("Received signal: %s", sig)
        context.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))  # type: ignore[misc]

    try:
        await context.run(initial_file)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await context.shutdown()
