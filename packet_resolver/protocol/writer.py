"""
Packet Builder - accumulate typed fields into the outbound payload.

The buffer holds the payload only. The opcode is prepended by packet(),
and the transport adds its own framing on top of that.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from packet_resolver.protocol.field_types import FieldType, encode_value

if TYPE_CHECKING:
    from packet_resolver.protocol.opcodes import OpCode
    from packet_resolver.resolver.store import FieldDefinition


class PacketBuffer:
    """Growing payload buffer, written in declaration order."""

    def __init__(self):
        self._buffer = bytearray()
        self.field_count = 0

    @classmethod
    def build(cls, definitions: Iterable[FieldDefinition]) -> PacketBuffer:
        """Replay stored field definitions into a fresh buffer."""
        buf = cls()
        buf.extend(definitions)
        return buf

    def append(self, field_type: FieldType, value: str = "") -> int:
        """Encode one field onto the end. Returns the encoded width."""
        data = encode_value(field_type, value)
        self._buffer.extend(data)
        self.field_count += 1
        return len(data)

    def extend(self, definitions: Iterable[FieldDefinition]) -> None:
        for definition in definitions:
            self.append(definition.type, definition.value)

    @property
    def length(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def packet(self, opcode: OpCode) -> bytes:
        """Opcode header + payload, ready for Session.send()."""
        return opcode.wire_bytes + bytes(self._buffer)

    @property
    def hex_dump(self) -> str:
        """16-byte wide hex dump with ASCII."""
        lines = []
        data = self._buffer
        for i in range(0, len(data), 16):
            chunk = data[i:i+16]
            hex_part = " ".join(f"{b:02x}" for b in chunk)
            ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
            lines.append(f"  {i:04x}  {hex_part:<48s}  {ascii_part}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"PacketBuffer({self.field_count} fields, {len(self._buffer)} bytes)"
