"""Tests for logging setup and job id tagging."""

import logging
from pathlib import Path

import pytest

from inkreader.utils.logging import JobIdFilter, job_context, setup_logging

pytestmark = pytest.mark.unit


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def make_record() -> logging.LogRecord:
    return logging.LogRecord("inkreader.test", logging.INFO, __file__, 1, "message", None, None)


class TestJobContext:
    def test_filter_when_outside_job_then_placeholder(self) -> None:
        record = make_record()

        JobIdFilter().filter(record)

        assert record.job_id == "-"

    def test_filter_when_inside_job_then_job_id_and_reset_after(self) -> None:
        inside = make_record()
        after = make_record()

        with job_context("job-42"):
            JobIdFilter().filter(inside)
        JobIdFilter().filter(after)

        assert inside.job_id == "job-42"
        assert after.job_id == "-"


class TestSetupLogging:
    def test_setup_logging_when_file_given_then_records_tagged(
        self, tmp_path: Path, restore_root_logger: None
    ) -> None:
        log_file = tmp_path / "logs" / "inkreader.log"

        setup_logging(level="DEBUG", log_file=log_file)
        with job_context("abc123"):
            logging.getLogger("inkreader.pipeline").info("rendered page")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "[abc123] rendered page" in log_file.read_text(encoding="utf-8")

    def test_setup_logging_when_called_twice_then_handlers_replaced(self, restore_root_logger: None) -> None:
        setup_logging()
        count = len(logging.getLogger().handlers)

        setup_logging(third_party_level="ERROR")

        assert len(logging.getLogger().handlers) == count
        assert logging.getLogger("PIL").level == logging.ERROR
