"""Integration tests for application wiring and the command line."""

from pathlib import Path

import pytest
from conftest import RecordingBackend

from inkreader.__main__ import create_parser, main
from inkreader.config.settings import load_settings
from inkreader.main import AppContext
from inkreader.models.input import ACTION_EXIT, NEXT, InputEvent
from inkreader.models.pagination import Ready

pytestmark = pytest.mark.integration

LONG_PAGE = "<html><body>" + "".join(
    f"<p>Paragraph {n} of a locally saved page with enough words to wrap.</p>" for n in range(40)
) + "</body></html>"


@pytest.fixture
def settings():
    return load_settings(
        display={"show_status_screens": False},
        rendering={
            "fonts": [],
            "bold_fonts": [],
            "italic_fonts": [],
            "monospace_fonts": [],
            "margin_top": 10,
            "margin_right": 10,
            "margin_bottom": 10,
            "margin_left": 10,
        },
        server={"enabled": False, "fetch_images": False},
    )


class TestAppContext:
    """Tests for AppContext."""

    async def test_run_when_file_opened_then_input_navigates_until_exit(self, settings, tmp_path: Path) -> None:
        page = tmp_path / "saved.html"
        page.write_text(LONG_PAGE, encoding="utf-8")
        backend = RecordingBackend()
        context = AppContext.from_settings(settings, backend=backend)

        context.open_file(page)
        await context.worker.drain()
        backend.events.extend([NEXT, InputEvent.custom(ACTION_EXIT), NEXT])
        await context.run()

        state = context.controller.snapshot()
        assert isinstance(state, Ready)
        assert state.current_index == 1
        assert len(backend.presented) == 2
        assert list(backend.events) == [NEXT]

        await context.shutdown()
        await context.shutdown()
        assert backend.closed
        assert context.worker.is_shutdown

    async def test_from_settings_when_server_enabled_then_server_created(self, settings) -> None:
        enabled = settings.model_copy(update={"server": settings.server.model_copy(update={"enabled": True})})

        context = AppContext.from_settings(enabled, backend=RecordingBackend())

        assert context.server is not None
        await context.shutdown()


class TestCommandLine:
    def test_create_parser_when_overrides_given_then_parsed(self) -> None:
        args = create_parser().parse_args(["--backend", "device", "--port", "8080", "page.html"])

        assert args.backend == "device"
        assert args.port == 8080
        assert args.file == Path("page.html")

    def test_main_when_config_invalid_then_exit_code_2(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("server:\n  port: -1\n")

        assert main(["--config", str(config)]) == 2
        assert "Invalid configuration" in capsys.readouterr().err
