"""Command line entry point.

Usage:
    python -m inkreader [--config PATH] [--backend device|window] [FILE]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from inkreader import __version__
from inkreader.config.settings import load_settings
from inkreader.exceptions import InkReaderError
from inkreader.main import run_app
from inkreader.utils.logging import setup_logging

logger = logging.getLogger("inkreader")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inkreader",
        description="Show captured web pages as paginated documents on an e-ink display",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", type=Path, help="YAML configuration file")
    parser.add_argument(
        "--backend", choices=("device", "window"), help="Override the configured display backend"
    )
    parser.add_argument("--port", type=int, help="Override the capture server port")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        help="Override the configured log level",
    )
    parser.add_argument("file", nargs="?", type=Path, help="Local HTML file to show at startup")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, configure logging and run the reader.

    Returns:
        Process exit code
    """
    args = create_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except InkReaderError as e:
        print(f"inkreader: {e}", file=sys.stderr)
        return 2

    # Command line values win over the file and the environment
    sections: dict[str, dict[str, Any]] = {"display": {}, "server": {}, "logging": {}}
    if args.backend:
        sections["display"]["backend"] = args.backend
    if args.port is not None:
        sections["server"]["port"] = args.port
    if args.log_level:
        sections["logging"]["level"] = args.log_level
    settings = settings.model_copy(
        update={
            name: getattr(settings, name).model_copy(update=values)
            for name, values in sections.items()
            if values
        }
    )

    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.file,
        third_party_level=settings.logging.third_party_level,
    )

    try:
        asyncio.run(run_app(settings, initial_file=args.file))
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt")
    except InkReaderError:
        logger.exception("Fatal error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
