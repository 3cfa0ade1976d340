"""
Session boundary - where packets go out and peer error text comes back.

A Session exposes send(bytes) and exactly one error-handler slot. Binding a
new handler silently replaces the old one; that's how a new resolve run
takes over a session from a previous one.

  LoopbackSession  in-memory, for tests and harnesses
  TcpSession       plain TCP: u32le length-framed packets out,
                   newline-delimited UTF-8 error text in
"""

from __future__ import annotations

import logging
import socket
import struct
import threading
from typing import Callable

log = logging.getLogger(__name__)

ErrorHandler = Callable[[str], None]
CloseHandler = Callable[[str], None]


class Session:
    """Base session: one rebindable error handler + send().

    Close handlers are told once, with a reason, when the session ends from
    either side.
    """

    def __init__(self):
        self._on_error: ErrorHandler | None = None
        self._close_handlers: list[CloseHandler] = []
        self._handler_lock = threading.Lock()
        self.closed = False

    @property
    def on_error(self) -> ErrorHandler | None:
        return self._on_error

    def bind_error_handler(self, handler: ErrorHandler) -> None:
        with self._handler_lock:
            if self._on_error is not None and self._on_error != handler:
                log.debug("Replacing error handler %r", self._on_error)
            self._on_error = handler

    def unbind_error_handler(self, handler: ErrorHandler | None = None) -> None:
        """Clear the slot. With a handler given, only if it's still the bound one."""
        with self._handler_lock:
            if handler is None or self._on_error == handler:
                self._on_error = None

    def deliver_error(self, text: str) -> None:
        """Hand peer error text to whoever holds the slot."""
        handler = self._on_error
        if handler is None:
            log.debug("No error handler bound, dropping: %s", text)
            return
        handler(text)

    def add_close_handler(self, handler: CloseHandler) -> None:
        with self._handler_lock:
            self._close_handlers.append(handler)

    def remove_close_handler(self, handler: CloseHandler) -> None:
        with self._handler_lock:
            if handler in self._close_handlers:
                self._close_handlers.remove(handler)

    def deliver_closed(self, reason: str) -> None:
        """Mark the session closed and notify close handlers. Only the first call counts."""
        with self._handler_lock:
            if self.closed:
                return
            self.closed = True
            self._on_error = None
            handlers, self._close_handlers = self._close_handlers, []
        log.info("Session closed: %s", reason)
        for handler in handlers:
            try:
                handler(reason)
            except Exception as e:
                log.error("Close handler failed: %s", e)

    def send(self, data: bytes) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self.deliver_closed("closed locally")


class LoopbackSession(Session):
    """Session that records sent packets and forwards them to an optional peer.

    peer(session, data) is called synchronously on every send; it may call
    session.deliver_error() from inside, like a real peer answering.
    """

    def __init__(self, peer: Callable[[LoopbackSession, bytes], None] | None = None):
        super().__init__()
        self.peer = peer
        self.sent: list[bytes] = []

    def send(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionError("session closed")
        self.sent.append(bytes(data))
        if self.peer is not None:
            self.peer(self, bytes(data))

    @property
    def last_sent(self) -> bytes | None:
        return self.sent[-1] if self.sent else None


class TcpSession(Session):
    """Line-oriented TCP session to a peer harness."""

    FRAME_HEADER = struct.Struct("<I")

    def __init__(self, host: str, port: int, timeout: float = 10.0):
        super().__init__()
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: socket.socket | None = None
        self._send_lock = threading.Lock()
        self._reader: threading.Thread | None = None

    def connect(self) -> None:
        self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self._sock.settimeout(None)
        self._reader = threading.Thread(target=self._read_loop, daemon=True, name="session-reader")
        self._reader.start()
        log.info("Connected to %s:%d", self.host, self.port)

    def send(self, data: bytes) -> None:
        if self._sock is None or self.closed:
            raise ConnectionError("session not connected")
        frame = self.FRAME_HEADER.pack(len(data)) + data
        with self._send_lock:
            self._sock.sendall(frame)
        log.debug("Sent %d bytes", len(data))

    def _read_loop(self) -> None:
        pending = b""
        sock = self._sock
        reason = "connection lost"
        while not self.closed and sock is not None:
            try:
                chunk = sock.recv(4096)
            except OSError as e:
                if not self.closed:
                    log.warning("Session read failed: %s", e)
                    reason = f"read failed: {e}"
                break
            if not chunk:
                reason = "peer closed the connection"
                break
            pending += chunk
            while b"\n" in pending:
                raw, pending = pending.split(b"\n", 1)
                text = raw.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    self.deliver_error(text)
                except Exception as e:
                    log.error("Error handler failed: %s", e)
        self.deliver_closed(reason)

    def close(self) -> None:
        super().close()
        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
            self._sock = None
