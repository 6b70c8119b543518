"""HTTP boundary for page captures and remote navigation."""

from __future__ import annotations

import logging
from typing import Any, Optional

from aiohttp import web

from inkreader.exceptions import ExtractionError
from inkreader.ingestion.service import IngestionService
from inkreader.models.input import (
    ACTION_FIRST_PAGE,
    ACTION_LAST_PAGE,
    NEXT,
    PREVIOUS,
    InputEvent,
)
from inkreader.models.pagination import describe_state
from inkreader.pagination.controller import PaginationController

logger = logging.getLogger(__name__)

PAGE_URL_HEADER = "X-Page-Url"
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

SERVICE_KEY = web.AppKey("service", IngestionService)
CONTROLLER_KEY = web.AppKey("controller", PaginationController)
CORS_ORIGIN_KEY = web.AppKey("cors_origin", str)
MAX_BODY_KEY = web.AppKey("max_body_bytes", int)

NAVIGATION_EVENTS: dict[str, InputEvent] = {
    "next": NEXT,
    "previous": PREVIOUS,
    "first": InputEvent.custom(ACTION_FIRST_PAGE),
    "last": InputEvent.custom(ACTION_LAST_PAGE),
}

REMOTE_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>inkreader</title>
<style>
body { font-family: sans-serif; margin: 2em; }
button { font-size: 1.5em; padding: 0.5em 1em; margin: 0.25em; }
</style>
</head>
<body>
<h1>inkreader</h1>
<p id="status">-</p>
<button onclick="go('first')">&laquo;</button>
<button onclick="go('previous')">&lsaquo; Previous</button>
<button onclick="go('next')">Next &rsaquo;</button>
<button onclick="go('last')">&raquo;</button>
<script>
function show(s) {
  var text = s.state;
  if (s.state === "ready") { text += ": page " + (s.current_index + 1) + " of " + s.page_count; }
  if (s.state === "error") { text += ": " + s.reason; }
  document.getElementById("status").textContent = text;
}
function go(direction) {
  fetch("/navigate", {method: "POST", headers: {"Content-Type": "application/json"},
    body: JSON.stringify({direction: direction})}).then(function (r) { return r.json(); }).then(show);
}
fetch("/status").then(function (r) { return r.json(); }).then(show);
</script>
</body>
</html>
"""


def _plain_error(status: int, reason: str) -> web.Response:
    return web.Response(status=status, text=reason, content_type="text/plain")


@web.middleware
async def cors_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Allow the browser capture extension to post from any page."""
    headers = {
        "Access-Control-Allow-Origin": request.app[CORS_ORIGIN_KEY],
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": f"Content-Type, {PAGE_URL_HEADER}",
    }
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=headers)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(headers)
        raise
    response.headers.update(headers)
    return response


async def render_handler(request: web.Request) -> web.Response:
    """Accept a page capture.

    Expects the page HTML as the body, a ``text/html`` content type and the
    page URL in the ``X-Page-Url`` header. Replies with an empty 200 once
    the job is queued, or a 4xx with a plain-text reason.
    """
    source_url = request.headers.get(PAGE_URL_HEADER, "").strip()
    if not source_url:
        return _plain_error(400, f"Missing {PAGE_URL_HEADER} header")
    if request.content_type not in HTML_CONTENT_TYPES:
        return _plain_error(415, f"Unsupported content type: {request.content_type or 'none'}")

    max_size = request.app[MAX_BODY_KEY]
    if request.content_length is not None and request.content_length > max_size:
        return _plain_error(413, f"Capture exceeds {max_size} bytes")
    try:
        raw = await request.read()
    except web.HTTPRequestEntityTooLarge:
        return _plain_error(413, f"Capture exceeds {max_size} bytes")
    if not raw:
        return _plain_error(400, "Empty capture body")

    try:
        request.app[SERVICE_KEY].accept(raw, source_url, request.charset)
    except ExtractionError as e:
        logger.warning("Rejected capture of %s: %s", source_url, e)
        return _plain_error(400, str(e))
    return web.Response(status=200)


async def navigate_handler(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return _plain_error(400, "Body must be JSON")
    direction = payload.get("direction") if isinstance(payload, dict) else None
    event = NAVIGATION_EVENTS.get(direction) if isinstance(direction, str) else None
    if event is None:
        return _plain_error(400, f"direction must be one of: {', '.join(NAVIGATION_EVENTS)}")

    controller = request.app[CONTROLLER_KEY]
    controller.handle_input(event)
    return web.json_response(describe_state(controller.snapshot()))


async def status_handler(request: web.Request) -> web.Response:
    return web.json_response(describe_state(request.app[CONTROLLER_KEY].snapshot()))


async def health_handler(_request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def index_handler(_request: web.Request) -> web.Response:
    return web.Response(text=REMOTE_PAGE, content_type="text/html")


def make_app(
    service: IngestionService,
    controller: PaginationController,
    max_body_bytes: int = 10 * 1024 * 1024,
    cors_allow_origin: str = "*",
) -> web.Application:
    """Create the aiohttp application.

    Args:
        service: Turns captures into render jobs
        controller: Pagination state for navigation and status
        max_body_bytes: Largest accepted capture body
        cors_allow_origin: Value of ``Access-Control-Allow-Origin``

    Returns:
        Configured web.Application
    """
    app = web.Application(middlewares=[cors_middleware], client_max_size=max_body_bytes)
    app[SERVICE_KEY] = service
    app[CONTROLLER_KEY] = controller
    app[CORS_ORIGIN_KEY] = cors_allow_origin
    app[MAX_BODY_KEY] = max_body_bytes

    app.router.add_post("/render", render_handler)
    app.router.add_post("/navigate", navigate_handler)
    app.router.add_get("/status", status_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_get("/", index_handler)
    return app


class IngestionServer:
    """Runs the capture API on a TCP port."""

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000) -> None:  # nosec: B104
        self._app = app
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    @property
    def port(self) -> int:
        """Bound port, useful when configured with port 0."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple):
                    return int(address[1])
        return self._port

    async def start(self) -> None:
        """Bind and start serving.

        Raises:
            OSError: If the address cannot be bound
        """
        self._runner = web.AppRunner(self._app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host=self._host, port=self._port)
        try:
            await site.start()
        except OSError:
            logger.exception("Failed to start server on %s:%d", self._host, self._port)
            await self._runner.cleanup()
            self._runner = None
            raise
        logger.info("Capture server listening on %s:%d", self._host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Capture server stopped")
