import json
from unittest.mock import MagicMock, patch

import pytest
from loguru import logger

from encmirror.logging import bind_run, log_event, setup_console, setup_json, truncate


@pytest.fixture(autouse=True)
def setup_test_logger():
    # Each test starts and ends without sinks
    logger.remove()
    yield
    logger.remove()


def test_truncate_short_text():
    text = "ffmpeg version 6.1"
    assert truncate(text) == text


def test_truncate_long_text_by_len():
    text = "a" * 5000
    truncated = truncate(text, max_len=1000)
    assert len(truncated) < 1100
    assert truncated.startswith("... (truncated)")


def test_truncate_keeps_the_tail_lines():
    text = "\n".join(f"frame {i}" for i in range(30))
    truncated = truncate(text, max_lines=10)
    lines = truncated.splitlines()
    assert len(lines) == 11
    assert lines[0] == "... (truncated)"
    assert lines[-1] == "frame 29"


def test_truncate_empty_string():
    assert truncate("") == ""


@patch("encmirror.logging.logger")
def test_log_event_strips_none_values(mock_logger):
    mock_bound_logger = MagicMock()
    mock_logger.bind.return_value = mock_bound_logger

    log_event("rename", path="a.ogg", target=None, level="DEBUG")

    mock_logger.bind.assert_called_once_with(action="rename", path="a.ogg")
    mock_bound_logger.log.assert_called_once_with("DEBUG", "rename")


@patch("encmirror.logging.logger")
def test_log_event_uses_msg_from_fields(mock_logger):
    mock_bound_logger = MagicMock()
    mock_logger.bind.return_value = mock_bound_logger

    log_event("encode", msg="encoded a.flac", path="a.flac")

    mock_logger.bind.assert_called_once_with(action="encode", path="a.flac")
    mock_bound_logger.log.assert_called_once_with("INFO", "encoded a.flac")


@patch("encmirror.logging.logger")
def test_setup_console_passes_colorize(mock_logger):
    setup_console("debug", colorize=True)
    mock_logger.remove.assert_called_once_with()
    kwargs = mock_logger.add.call_args.kwargs
    assert kwargs["level"] == "DEBUG"
    assert kwargs["colorize"] is True


def test_json_log_includes_run_id_and_action(tmp_path):
    log_file = tmp_path / "run.log"
    setup_json(str(log_file))
    run_id = bind_run()
    log_event("delete", path="old.ogg")
    logger.complete()

    lines = log_file.read_text().splitlines()
    record = json.loads(lines[-1])["record"]
    assert record["extra"]["run_id"] == run_id
    assert record["extra"]["action"] == "delete"
    assert record["extra"]["path"] == "old.ogg"
    assert record["message"] == "delete"
