from __future__ import annotations
import sys
import uuid
from typing import Optional, Any, Dict
from loguru import logger

CONSOLE_FORMAT = "<level>{level: <8}</level> | <green>{time:HH:mm:ss}</green> | {message}"


def setup_console(level: str = "INFO", *, colorize: Optional[bool] = None) -> None:
    """Replace all sinks with a stderr sink.

    colorize=None lets loguru decide from the terminal; True forces colors
    (``--color``), e.g. when piping through a pager.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=CONSOLE_FORMAT,
        colorize=colorize,
        backtrace=False,
        diagnose=False,
    )


def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)


def bind_run(run_id: Optional[str] = None) -> str:
    rid = run_id or str(uuid.uuid4())
    logger.configure(extra={"run_id": rid})
    return rid


def log_event(action: str, **fields: Any) -> None:
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def truncate(text: str, max_len: int = 4096, max_lines: int = 20) -> str:
    """Truncate a string to a max length and/or max number of lines, keeping the tail."""
    if not text:
        return ""
    lines = text.strip().splitlines()
    if len(lines) > max_lines:
        text = "\n".join(["... (truncated)"] + lines[-max_lines:])

    if len(text) > max_len:
        text = "... (truncated)\n" + text[-max_len:]
    return text
