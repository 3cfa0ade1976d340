"""
OpCode Codec - turn operator input into a 16-bit message identifier.

Accepted literal forms for the same opcode:
  0x81 / 0x0081   hex with prefix
  81              single hex byte
  8100            two hex bytes in wire order (little-endian)

Symbolic names come from an OpCodeRegistry. A missing name is fine; it is
only used for file names and the generated stub line.
"""

from __future__ import annotations

import json
import logging
import string
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from packet_resolver.errors import InvalidOpCodeFormat

log = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"
COMMAND_VERB = "resolve"


@dataclass(frozen=True)
class OpCode:
    """A resolved opcode: numeric identifier + symbolic name."""
    value: int
    name: str = UNKNOWN_NAME

    @property
    def hex(self) -> str:
        return f"0x{self.value:04X}"

    @property
    def wire_bytes(self) -> bytes:
        """Opcode as it precedes the payload on the wire."""
        return self.value.to_bytes(2, "little")

    def __str__(self) -> str:
        return f"{self.name} ({self.hex})"


class OpCodeRegistry:
    """Immutable opcode -> name table.

    Built explicitly or loaded from JSON shaped like:
        {"opcodes": {"0x0081": "Wardrobe", "23": "UserChat"}}
    """

    def __init__(self, names: Mapping[int, str] | None = None):
        self._names = MappingProxyType(dict(names or {}))

    @classmethod
    def from_json(cls, path: str | Path) -> OpCodeRegistry:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        raw = data.get("opcodes", {})
        names: dict[int, str] = {}
        for key, name in raw.items():
            key = str(key).strip()
            value = int(key, 16) if key.lower().startswith("0x") else int(key)
            names[value] = name
        log.debug("Loaded %d opcode names from %s", len(names), path)
        return cls(names)

    def name_of(self, value: int) -> str:
        return self._names.get(value, UNKNOWN_NAME)

    def __contains__(self, value: int) -> bool:
        return value in self._names

    def __len__(self) -> int:
        return len(self._names)


def _parse_hex(text: str, token: str) -> int:
    if not text or any(c not in string.hexdigits for c in text):
        raise InvalidOpCodeFormat(f"Invalid opcode: {token!r}")
    return int(text, 16)


def parse_opcode_value(token: str) -> int:
    """Parse a single opcode token into its 16-bit value."""
    if token[:2].lower() == "0x":
        value = _parse_hex(token[2:], token)
    elif len(token) == 2:
        value = _parse_hex(token, token)
    elif len(token) == 4:
        _parse_hex(token, token)
        # Written in wire order, so the bytes come in reversed.
        value = int.from_bytes(bytes.fromhex(token), "little")
    else:
        raise InvalidOpCodeFormat(f"Invalid opcode: {token!r}")

    if not 0 <= value <= 0xFFFF:
        raise InvalidOpCodeFormat(f"Opcode out of range: {token!r}")
    return value


def parse_opcode(command: str, registry: OpCodeRegistry | None = None) -> OpCode:
    """Parse a command line like '81' or 'resolve 0x0081' into an OpCode.

    Only the first token (after an optional 'resolve' verb) is consumed.
    """
    args = command.split()
    if args and args[0].lower() == COMMAND_VERB:
        args = args[1:]
    if not args:
        raise InvalidOpCodeFormat("No opcode given")

    value = parse_opcode_value(args[0])
    name = registry.name_of(value) if registry else UNKNOWN_NAME
    return OpCode(value, name)
