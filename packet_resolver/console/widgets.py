"""
Operator console - panel widgets.

Two panels:
1. StructurePanel - the structure file as it currently sits on disk
2. FeedbackPanel  - resolver transitions + warnings from the resolver loggers
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from rich.text import Text
from textual.containers import Vertical
from textual.widgets import RichLog, Static

from packet_resolver.resolver.engine import ResolveState
from packet_resolver.resolver.store import CALL_PREFIX, HEADER_LINES


def _fmt_time(ts: float) -> str:
    return time.strftime("%H:%M:%S", time.localtime(ts))


_STATE_COLORS: dict[ResolveState, str] = {
    ResolveState.IDLE: "bright_black",
    ResolveState.SENT: "cyan",
    ResolveState.ACCEPTED: "green",
    ResolveState.ABORTED: "red",
    ResolveState.CANCELLED: "yellow",
}

_LEVEL_COLORS: dict[int, str] = {
    logging.DEBUG: "bright_black",
    logging.INFO: "white",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}


def render_structure(lines: list[str]) -> Text:
    """Structure file with header dimmed, fields numbered, comments in yellow."""
    text = Text()
    field_no = 0
    for i, line in enumerate(lines):
        if i < HEADER_LINES:
            text.append(f"     {line}\n", style="bright_black")
        elif line.strip().startswith("#"):
            text.append(f"     {line}\n", style="yellow")
        elif line.strip().startswith(CALL_PREFIX):
            field_no += 1
            text.append(f"{field_no:>3}  ", style="bright_black")
            text.append(f"{line}\n", style="bold")
        elif line.strip():
            text.append(f"  ?  {line}\n", style="red")
    return text


def format_transition(state: ResolveState, message: str, ts: float | None = None) -> Text:
    text = Text()
    text.append(f"[{_fmt_time(time.time() if ts is None else ts)}] ", style="bright_black")
    text.append(state.name, style=f"bold {_STATE_COLORS.get(state, 'white')}")
    if message:
        text.append(f" {message}")
    return text


def format_record(record: logging.LogRecord) -> Text:
    text = Text()
    text.append(f"[{_fmt_time(record.created)}] ", style="bright_black")
    text.append(f"{record.levelname:<7} ", style=_LEVEL_COLORS.get(record.levelno, "white"))
    text.append(record.getMessage())
    return text


class StructurePanel(Vertical):
    """Current structure file contents."""

    def compose(self):
        yield Static("No opcode loaded", id="structure-title")
        yield Static("", id="structure-body")

    def show(self, title: str, lines: list[str]) -> None:
        self.query_one("#structure-title", Static).update(title)
        self.query_one("#structure-body", Static).update(render_structure(lines))


class FeedbackPanel(Vertical):
    """Resolver transitions and log output."""

    def compose(self):
        yield RichLog(highlight=False, markup=False, max_lines=1000, id="feedback-log")

    def write(self, text: Text) -> None:
        self.query_one("#feedback-log", RichLog).write(text)

    def clear_log(self) -> None:
        self.query_one("#feedback-log", RichLog).clear()


class ConsoleLogHandler(logging.Handler):
    """Forwards log records to a sink (the console hands in a thread-safe one)."""

    def __init__(self, sink: Callable[[Text], None], level: int = logging.INFO):
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.sink(format_record(record))
        except Exception:
            self.handleError(record)
