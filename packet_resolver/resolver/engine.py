"""
Resolver Engine - guess / verify / persist / resend loop for one opcode.

    start() --send--> SENT --feedback ok--> extend buffer + file --send--> SENT ...
                        |
                        +--> ACCEPTED   (silence for idle_timeout after a send)
                        +--> ABORTED    (stray opcode, offset drift, unknown hint, I/O)
                        +--> CANCELLED  (cancel(), session closed)

The engine never blocks. Feedback arrives from the transport on whatever
thread it likes; every input (start, feedback, idle tick, cancel, session close) goes into a
single inbox and is processed one at a time by whichever thread currently
holds the drain lock. Feedback delivered from inside our own send() is
queued, not recursed into.

Aborts leave the structure file as-is. The fix is to edit the file and run
the resolver again.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from typing import Callable

from packet_resolver.config import HEADER_LENGTH, ResolverConfig
from packet_resolver.errors import (
    MalformedFeedback,
    OffsetMismatch,
    ResolverError,
    StructureFileError,
    UnexpectedOpCode,
    UnknownHint,
)
from packet_resolver.protocol.feedback import FeedbackEvent, parse_feedback
from packet_resolver.protocol.field_types import FieldType, type_for_hint
from packet_resolver.protocol.opcodes import OpCode, OpCodeRegistry, parse_opcode
from packet_resolver.protocol.writer import PacketBuffer
from packet_resolver.resolver.store import FieldDefinition, StructureStore
from packet_resolver.session.transport import Session

log = logging.getLogger(__name__)


class ResolveState(Enum):
    IDLE = auto()       # Built, nothing sent yet
    SENT = auto()       # Waiting on peer feedback
    ACCEPTED = auto()   # Peer went quiet after our last send
    ABORTED = auto()    # Feedback didn't line up, operator has to step in
    CANCELLED = auto()  # Stopped by the caller

    @property
    def is_final(self) -> bool:
        return self in (ResolveState.ACCEPTED, ResolveState.ABORTED, ResolveState.CANCELLED)


TransitionCallback = Callable[["ResolveEngine", ResolveState, str], None]

_START = "start"
_FEEDBACK = "feedback"
_IDLE = "idle"
_CANCEL = "cancel"
_CLOSED = "closed"


class ResolveEngine:
    """Resolves the payload layout of one opcode against a live peer."""

    def __init__(
        self,
        opcode: OpCode,
        store: StructureStore,
        session: Session,
        header_length: int = HEADER_LENGTH,
        idle_timeout: float | None = None,
    ):
        self.opcode = opcode
        self.store = store
        self.session = session
        self.header_length = header_length
        self.idle_timeout = idle_timeout
        self.buffer = PacketBuffer.build(store.fields)
        self.state = ResolveState.IDLE
        self.abort_error: ResolverError | None = None
        self.fields_added = 0
        self.sends = 0
        self._inbox: queue.SimpleQueue[tuple[str, object]] = queue.SimpleQueue()
        self._drain_lock = threading.Lock()
        self._finished = threading.Event()
        self._timer: threading.Timer | None = None
        self._callbacks: list[TransitionCallback] = []

    @property
    def expected_offset(self) -> int:
        """Offset the next feedback event must report."""
        return self.buffer.length + self.header_length

    def on_transition(self, callback: TransitionCallback) -> None:
        """Register callback(engine, state, message) for every state change."""
        self._callbacks.append(callback)

    # ---- Inputs ----

    def start(self) -> None:
        """Take over the session's error slot and send the current buffer."""
        self._submit(_START, None)

    def on_feedback(self, text: str) -> None:
        """Error handler bound to the session."""
        self._submit(_FEEDBACK, text)

    def cancel(self) -> None:
        self._submit(_CANCEL, None)

    def on_session_closed(self, reason: str) -> None:
        """Close handler registered on the session."""
        self._submit(_CLOSED, reason)

    def wait(self, timeout: float | None = None) -> bool:
        """Block the caller until a final state. Returns False on timeout."""
        return self._finished.wait(timeout)

    # ---- Serialization ----

    def _submit(self, kind: str, payload: object) -> None:
        self._inbox.put((kind, payload))
        self._drain()

    def _drain(self) -> None:
        while True:
            if not self._drain_lock.acquire(blocking=False):
                return  # the holder will pick it up
            try:
                while True:
                    try:
                        kind, payload = self._inbox.get_nowait()
                    except queue.Empty:
                        break
                    self._dispatch(kind, payload)
            finally:
                self._drain_lock.release()
            if self._inbox.empty():
                return

    def _dispatch(self, kind: str, payload: object) -> None:
        if kind == _START:
            self._handle_start()
        elif kind == _FEEDBACK:
            self._handle_feedback(str(payload))
        elif kind == _IDLE:
            self._handle_idle(payload)
        elif kind == _CANCEL:
            self._handle_cancel()
        elif kind == _CLOSED:
            self._handle_closed(str(payload))

    # ---- Handlers (only ever run under the drain lock) ----

    def _handle_start(self) -> None:
        if self.state is not ResolveState.IDLE:
            log.warning("Resolver for %s already started (%s)", self.opcode, self.state.name)
            return
        self.session.bind_error_handler(self.on_feedback)
        self.session.add_close_handler(self.on_session_closed)
        log.info(
            "Resolving %s from %s: %d stored fields, %d bytes",
            self.opcode, self.store.path, self.buffer.field_count, self.buffer.length,
        )
        self._transition(ResolveState.SENT, f"sending {self.buffer.length} bytes")
        self._send()

    def _handle_feedback(self, text: str) -> None:
        if self.state is not ResolveState.SENT:
            log.debug("Ignoring feedback in state %s: %s", self.state.name, text)
            return

        try:
            event = parse_feedback(text)
        except MalformedFeedback as e:
            log.warning("%s", e)
            return

        if event.is_clean:
            log.info("Peer reported no error for %s (%s)", self.opcode, event)
            return

        if event.opcode != self.opcode.value:
            log.warning("Error for unexpected op code: 0x%04X", event.opcode)
            self._abort(UnexpectedOpCode(self.opcode.value, event.opcode))
            return

        expected = self.expected_offset
        if event.offset != expected:
            log.warning("Offset: %d does not match packet length: %d", event.offset, expected)
            self._abort(OffsetMismatch(expected, event.offset))
            return

        field_type = type_for_hint(event.hint)
        if field_type is FieldType.UNKNOWN:
            self._extend_unknown(event)
            return

        definition = FieldDefinition(field_type)
        try:
            self.store.append(definition)
        except StructureFileError as e:
            self._abort(e)
            raise
        self.buffer.append(definition.type, definition.value)
        self.fields_added += 1
        log.info(
            "offset %d: %s -> Write%s (%d bytes total)",
            event.offset, event.hint_token, field_type.token, self.buffer.length,
        )
        self._transition(ResolveState.SENT, f"+{field_type.token} at offset {event.offset}")
        self._send()

    def _extend_unknown(self, event: FeedbackEvent) -> None:
        log.warning("No field type for hint %r at offset %d", event.hint_token, event.offset)
        try:
            self.store.append_placeholder(event.hint_token, event.offset)
        except StructureFileError as e:
            self._abort(e)
            raise
        # Nothing to add to the buffer, so resending would just repeat this error.
        self._abort(UnknownHint(event.hint_token, event.offset))

    def _handle_idle(self, generation: object) -> None:
        if self.state is ResolveState.SENT and generation == self.sends:
            self._finish(ResolveState.ACCEPTED, f"no feedback for {self.idle_timeout}s")

    def _handle_cancel(self) -> None:
        if self.state.is_final:
            return
        self._finish(ResolveState.CANCELLED, "cancelled")

    def _handle_closed(self, reason: str) -> None:
        if self.state.is_final:
            return
        log.warning("Session for %s ended while %s: %s", self.opcode, self.state.name, reason)
        self._finish(ResolveState.CANCELLED, f"session closed: {reason}")

    # ---- Helpers ----

    def _send(self) -> None:
        data = self.buffer.packet(self.opcode)
        self.sends += 1
        self._restart_timer()
        try:
            self.session.send(data)
        except OSError as e:
            log.error("Send failed for %s: %s", self.opcode, e)
            self._finish(ResolveState.ABORTED, f"send failed: {e}")
            raise
        log.debug("Sent %s:\n%s", self.buffer, self.buffer.hex_dump)

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.idle_timeout is None:
            return
        self._timer = threading.Timer(self.idle_timeout, self._submit, args=(_IDLE, self.sends))
        self._timer.daemon = True
        self._timer.start()

    def _abort(self, error: ResolverError) -> None:
        self.abort_error = error
        log.warning(
            "Aborting %s: %s. Structure file left as-is: %s",
            self.opcode, error, self.store.path,
        )
        self._finish(ResolveState.ABORTED, str(error))

    def _finish(self, state: ResolveState, message: str) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.session.unbind_error_handler(self.on_feedback)
        self.session.remove_close_handler(self.on_session_closed)
        self._transition(state, message)
        if state is ResolveState.ACCEPTED:
            log.info(
                "%s accepted with %d fields (%d new), %d bytes",
                self.opcode, len(self.store.fields), self.fields_added, self.buffer.length,
            )
        self._finished.set()

    def _transition(self, state: ResolveState, message: str) -> None:
        self.state = state
        for cb in self._callbacks:
            try:
                cb(self, state, message)
            except Exception as e:
                log.error("Transition callback error: %s", e)


def prepare(
    command: str,
    session: Session,
    config: ResolverConfig | None = None,
    registry: OpCodeRegistry | None = None,
) -> ResolveEngine:
    """Parse the command and load or create its structure file. Not started yet.

    Raises InvalidOpCodeFormat before anything touches disk or the session.
    """
    config = config or ResolverConfig()
    if registry is None and config.opcodes_file:
        registry = OpCodeRegistry.from_json(config.opcodes_file)
    opcode = parse_opcode(command, registry)

    store = StructureStore(config.structures_dir, opcode)
    store.load_or_create()

    engine = ResolveEngine(
        opcode, store, session,
        header_length=config.header_length,
        idle_timeout=config.idle_timeout,
    )
    return engine


def resolve(
    command: str,
    session: Session,
    config: ResolverConfig | None = None,
    registry: OpCodeRegistry | None = None,
) -> ResolveEngine:
    """prepare() + start()."""
    engine = prepare(command, session, config, registry)
    engine.start()
    return engine
