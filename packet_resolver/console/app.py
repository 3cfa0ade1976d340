"""
Operator console - Textual TUI for driving the resolver.

Type an opcode command (`resolve 81`, `0x0081`, `8100`) and watch the
structure file grow as the peer answers. Edit the file in another window
and press ctrl+r to run again from the corrected state.

Keys:
  ctrl+x  cancel the running resolve
  ctrl+r  re-run the last command
  ctrl+l  clear the log
  ctrl+q  quit
"""

from __future__ import annotations

import logging

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import Footer, Input, Static

from packet_resolver.config import ResolverConfig
from packet_resolver.console.widgets import (
    ConsoleLogHandler,
    FeedbackPanel,
    StructurePanel,
    format_transition,
)
from packet_resolver.errors import InvalidOpCodeFormat, StructureFileError
from packet_resolver.protocol.opcodes import OpCodeRegistry
from packet_resolver.resolver.engine import ResolveEngine, ResolveState, prepare
from packet_resolver.session.transport import Session


class EngineTransition(Message):
    """Posted from whichever thread the engine changed state on."""

    def __init__(self, engine: ResolveEngine, state: ResolveState, text: str):
        super().__init__()
        self.engine = engine
        self.state = state
        self.text = text


class LogLine(Message):
    def __init__(self, text: Text):
        super().__init__()
        self.text = text


class ResolverConsole(App):
    """packet-resolver operator console."""

    CSS = """
    #header-bar { height: 1; background: $boost; }
    #status-label { width: 1fr; }
    #panels { height: 1fr; }
    StructurePanel { width: 1fr; border: round $primary; overflow-y: auto; }
    FeedbackPanel { width: 1fr; border: round $secondary; }
    #structure-title { text-style: bold; }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+x", "cancel", "Cancel"),
        Binding("ctrl+r", "rerun", "Re-run"),
        Binding("ctrl+l", "clear_log", "Clear"),
    ]

    def __init__(
        self,
        session: Session,
        config: ResolverConfig | None = None,
        registry: OpCodeRegistry | None = None,
        command: str | None = None,
    ):
        super().__init__()
        self.session = session
        self.config = config or ResolverConfig()
        self.registry = registry
        self.engine: ResolveEngine | None = None
        self._last_command = command
        self._log_handler = ConsoleLogHandler(lambda text: self.post_message(LogLine(text)))

    def compose(self) -> ComposeResult:
        with Horizontal(id="header-bar"):
            yield Static("packet-resolver", id="status-label")
        with Horizontal(id="panels"):
            yield StructurePanel()
            yield FeedbackPanel()
        yield Input(placeholder="resolve <opcode>", id="command")
        yield Footer()

    def on_mount(self) -> None:
        logging.getLogger("packet_resolver").addHandler(self._log_handler)
        # Pick up operator edits to the structure file
        self.set_interval(1.0, self._refresh_structure)
        if self._last_command:
            self._run(self._last_command)

    def on_unmount(self) -> None:
        logging.getLogger("packet_resolver").removeHandler(self._log_handler)
        if self.engine is not None:
            self.engine.cancel()

    # ---- Resolver ----

    def _run(self, command: str) -> None:
        if self.engine is not None and not self.engine.state.is_final:
            self.engine.cancel()

        try:
            engine = prepare(command, self.session, self.config, self.registry)
        except InvalidOpCodeFormat as e:
            self.notify(str(e), severity="error")
            return
        except StructureFileError as e:
            self.notify(str(e), severity="error")
            return

        self._last_command = command
        self.engine = engine
        engine.on_transition(
            lambda eng, state, text: self.post_message(EngineTransition(eng, state, text))
        )
        self._refresh_structure()
        try:
            engine.start()
        except OSError as e:
            self.notify(f"Send failed: {e}", severity="error")

    def _refresh_structure(self) -> None:
        engine = self.engine
        panel = self.query_one(StructurePanel)
        if engine is None:
            return
        try:
            lines = engine.store.lines()
        except StructureFileError as e:
            lines = [f"# {e}"]
        panel.show(f"{engine.opcode} - {engine.store.path.name}", lines)
        self._update_header()

    def _update_header(self) -> None:
        status = self.query_one("#status-label", Static)
        engine = self.engine
        if engine is None:
            status.update("packet-resolver | idle")
            return
        status.update(
            f"packet-resolver | {engine.opcode} | {engine.state.name} | "
            f"{len(engine.store.fields)} fields (+{engine.fields_added}) | "
            f"next offset {engine.expected_offset}"
        )

    # ---- Messages ----

    def on_input_submitted(self, event: Input.Submitted) -> None:
        command = event.value.strip()
        event.input.value = ""
        if command:
            self._run(command)

    def on_engine_transition(self, message: EngineTransition) -> None:
        if message.engine is not self.engine:
            return
        self.query_one(FeedbackPanel).write(format_transition(message.state, message.text))
        self._refresh_structure()
        if message.state is ResolveState.ACCEPTED:
            self.notify(f"{message.engine.opcode} accepted")
        elif message.state is ResolveState.ABORTED:
            self.notify(f"Aborted: {message.text}", severity="warning")

    def on_log_line(self, message: LogLine) -> None:
        self.query_one(FeedbackPanel).write(message.text)

    # ---- Actions ----

    def action_cancel(self) -> None:
        if self.engine is not None and not self.engine.state.is_final:
            self.engine.cancel()

    def action_rerun(self) -> None:
        if self._last_command:
            self._run(self._last_command)
        else:
            self.notify("Nothing to re-run")

    def action_clear_log(self) -> None:
        self.query_one(FeedbackPanel).clear_log()
