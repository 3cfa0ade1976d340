"""Shared fixtures for packet-resolver tests."""

from __future__ import annotations

import struct

import pytest

from packet_resolver.protocol.feedback import format_feedback
from packet_resolver.protocol.field_types import FieldType
from packet_resolver.protocol.opcodes import OpCode, OpCodeRegistry
from packet_resolver.resolver.store import StructureStore
from packet_resolver.session.transport import LoopbackSession

HEADER_LENGTH = 6

_HINT_FOR_TYPE = {
    FieldType.BYTE: "Decode1",
    FieldType.SHORT: "Decode2",
    FieldType.INT: "Decode4",
    FieldType.FLOAT: "Decodef",
    FieldType.LONG: "Decode8",
    FieldType.UNICODE_STRING: "DecodeStr",
    FieldType.STRING: "DecodeStrA",
}


class SimulatedPeer:
    """Peer that knows the real layout and complains about the first missing field.

    Goes quiet once the whole layout is present, or answers with a clean
    `hint=None` report when clean_ack is set.
    """

    def __init__(self, layout: list[FieldType], header_length: int = HEADER_LENGTH,
                 clean_ack: bool = False):
        self.layout = layout
        self.header_length = header_length
        self.clean_ack = clean_ack
        self.received: list[bytes] = []

    def __call__(self, session: LoopbackSession, data: bytes) -> None:
        self.received.append(data)
        opcode = int.from_bytes(data[:2], "little")
        payload = data[2:]
        offset = self._first_missing(payload)
        if offset is None:
            if self.clean_ack:
                session.deliver_error(format_feedback(opcode, len(payload) + self.header_length, "None"))
            return
        pos, field_type = offset
        session.deliver_error(
            "Exception: decode failed "
            + format_feedback(opcode, pos + self.header_length, _HINT_FOR_TYPE[field_type])
        )

    def _first_missing(self, payload: bytes) -> tuple[int, FieldType] | None:
        pos = 0
        for field_type in self.layout:
            remaining = len(payload) - pos
            if field_type.width is not None:
                if remaining < field_type.width:
                    return pos, field_type
                pos += field_type.width
                continue
            if remaining < 2:
                return pos, field_type
            (count,) = struct.unpack_from("<H", payload, pos)
            size = 2 + (count * 2 if field_type is FieldType.UNICODE_STRING else count)
            if remaining < size:
                return pos, field_type
            pos += size
        return None


@pytest.fixture
def registry() -> OpCodeRegistry:
    return OpCodeRegistry({0x0081: "Wardrobe", 0x0018: "FieldAddUser"})


@pytest.fixture
def wardrobe() -> OpCode:
    return OpCode(0x0081, "Wardrobe")


@pytest.fixture
def structures_dir(tmp_path):
    return tmp_path / "PacketStructures"


@pytest.fixture
def store(structures_dir, wardrobe) -> StructureStore:
    s = StructureStore(structures_dir, wardrobe)
    s.load_or_create()
    return s


@pytest.fixture
def session() -> LoopbackSession:
    return LoopbackSession()
