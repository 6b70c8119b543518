"""Logging configuration for inkreader."""

from __future__ import annotations

import contextlib
import contextvars
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(job_id)s] %(message)s"

# Libraries that log too much at INFO/DEBUG
NOISY_LOGGERS = (
    "PIL",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web_log",
    "asyncio",
    "fontTools",
    "charset_normalizer",
)

_current_job: contextvars.ContextVar[str] = contextvars.ContextVar("inkreader_job_id", default="-")


class JobIdFilter(logging.Filter):
    """Add the id of the render job being processed to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = _current_job.get()
        return True


@contextlib.contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with a render job id.

    Args:
        job_id: Render job identifier
    """
    token = _current_job.set(job_id)
    try:
        yield
    finally:
        _current_job.reset(token)


def setup_logging(
    level: int | str = logging.INFO,
    log_file: Optional[Path] = None,
    third_party_level: int | str = logging.WARNING,
    log_format: str = DEFAULT_FORMAT,
) -> None:
    """Configure the root logger.

    Replaces handlers installed by a previous call, so it is safe to call
    more than once.

    Args:
        level: Root log level
        log_file: Also write to this file when given
        third_party_level: Level for noisy third-party loggers
        log_format: Record format, may use ``%(job_id)s``
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if isinstance(third_party_level, str):
        third_party_level = getattr(logging, third_party_level.upper(), logging.WARNING)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_inkreader", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    formatter = logging.Formatter(log_format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(JobIdFilter())
        handler._inkreader = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s file=%s", logging.getLevelName(level), log_file
    )
