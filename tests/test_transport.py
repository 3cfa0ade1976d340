"""Tests for the session boundary."""

import socket
import struct
import threading

import pytest

from packet_resolver.protocol.field_types import FieldType
from packet_resolver.resolver.engine import ResolveEngine, ResolveState
from packet_resolver.session.transport import LoopbackSession, Session, TcpSession


def test_single_handler_slot():
    session = LoopbackSession()
    got_a, got_b = [], []
    session.bind_error_handler(got_a.append)
    session.bind_error_handler(got_b.append)

    session.deliver_error("boom")
    assert got_a == []
    assert got_b == ["boom"]


def test_unbind_only_if_still_bound():
    session = LoopbackSession()
    a, b = [], []
    session.bind_error_handler(a.append)
    session.bind_error_handler(b.append)

    session.unbind_error_handler(a.append)
    assert session.on_error == b.append

    session.unbind_error_handler(b.append)
    assert session.on_error is None


def test_deliver_without_handler_is_dropped():
    LoopbackSession().deliver_error("nobody listening")


def test_loopback_records_and_forwards():
    seen = []
    session = LoopbackSession(lambda s, data: seen.append(data))
    session.send(b"\x81\x00")
    assert session.sent == [b"\x81\x00"]
    assert seen == [b"\x81\x00"]


def test_closed_loopback_refuses_send():
    session = LoopbackSession()
    session.close()
    with pytest.raises(ConnectionError):
        session.send(b"")


def test_base_session_send_not_implemented():
    with pytest.raises(NotImplementedError):
        Session().send(b"")


class _FramedPeer:
    """Minimal TCP peer: reads length-framed packets, answers with feedback lines."""

    def __init__(self, layout_widths: list[int], header_length: int = 6):
        self.widths = layout_widths
        self.header_length = header_length
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.bind(("127.0.0.1", 0))
        self.server.listen(1)
        self.port = self.server.getsockname()[1]
        self.packets: list[bytes] = []
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _recv_exact(self, conn, n):
        data = b""
        while len(data) < n:
            chunk = conn.recv(n - len(data))
            if not chunk:
                raise ConnectionError
            data += chunk
        return data

    def _serve(self):
        conn, _ = self.server.accept()
        with conn:
            try:
                while True:
                    (length,) = struct.unpack("<I", self._recv_exact(conn, 4))
                    packet = self._recv_exact(conn, length)
                    self.packets.append(packet)
                    opcode = int.from_bytes(packet[:2], "little")
                    payload_len = len(packet) - 2
                    consumed = 0
                    for width in self.widths:
                        if payload_len < consumed + width:
                            hint = {1: "Decode1", 2: "Decode2", 4: "Decode4", 8: "Decode8"}[width]
                            offset = consumed + self.header_length
                            line = f"noise\n[type={opcode}][offset={offset}][hint={hint}]\n"
                            conn.sendall(line.encode())
                            break
                        consumed += width
            except (ConnectionError, OSError):
                pass

    def close(self):
        self.server.close()


def test_tcp_session_resolves_against_peer(store):
    peer = _FramedPeer([4, 2, 1])
    session = TcpSession("127.0.0.1", peer.port)
    session.connect()
    try:
        engine = ResolveEngine(store.opcode, store, session, idle_timeout=0.5)
        engine.start()
        assert engine.wait(timeout=10.0)
        assert engine.state is ResolveState.ACCEPTED
        assert [f.type for f in store.fields] == [FieldType.INT, FieldType.SHORT, FieldType.BYTE]
        assert peer.packets[-1] == b"\x81\x00" + b"\x00" * 7
    finally:
        session.close()
        peer.close()


def test_close_handlers_fire_once():
    session = LoopbackSession()
    reasons = []
    session.add_close_handler(reasons.append)
    session.close()
    session.close()
    assert reasons == ["closed locally"]
    assert session.closed


def test_removed_close_handler_not_called():
    session = LoopbackSession()
    reasons = []
    session.add_close_handler(reasons.append)
    session.remove_close_handler(reasons.append)
    session.close()
    assert reasons == []


class _HangUpPeer:
    """Reads one framed packet, then drops the connection."""

    def __init__(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.bind(("127.0.0.1", 0))
        self.server.listen(1)
        self.port = self.server.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        conn, _ = self.server.accept()
        with conn:
            conn.recv(4096)

    def close(self):
        self.server.close()


def test_tcp_peer_hang_up_ends_resolve(store):
    peer = _HangUpPeer()
    session = TcpSession("127.0.0.1", peer.port)
    session.connect()
    try:
        engine = ResolveEngine(store.opcode, store, session)
        engine.start()
        assert engine.wait(timeout=5.0)
        assert engine.state is ResolveState.CANCELLED
        assert session.closed
    finally:
        session.close()
        peer.close()
