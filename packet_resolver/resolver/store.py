"""
Structure Store - the on-disk, human-editable structure for one opcode.

File layout (PacketStructures/0129 - Wardrobe.txt):
  #Generated by packet-resolver
  PacketWriter pWriter = PacketWriter.Of(SendOp.Wardrobe);
  pWriter.WriteShort();
  pWriter.WriteInt(5);
  pWriter.WriteUnicodeString("hello");

The first two lines are never parsed. Everything after is one field per line
and the file is only ever appended to, so an operator can fix a value or
delete a bad guess and re-run the resolver from there.

Load policy is lenient: a line with an unknown type token or an unusable
literal is logged and dropped rather than failing the whole load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from packet_resolver.errors import StructureFileError, UnknownFieldType
from packet_resolver.protocol.field_types import FieldType, encode_value, type_for_token
from packet_resolver.protocol.opcodes import OpCode

log = logging.getLogger(__name__)

PROVENANCE_LINE = "#Generated by packet-resolver"
STUB_TEMPLATE = "PacketWriter pWriter = PacketWriter.Of(SendOp.{name});"
CALL_PREFIX = "pWriter.Write"
HEADER_LINES = 2


@dataclass(frozen=True)
class FieldDefinition:
    """One field: its type and the literal written for it."""
    type: FieldType
    value: str = ""

    def __post_init__(self) -> None:
        if not self.value and not self.type.is_string:
            object.__setattr__(self, "value", self.type.default)

    def to_line(self) -> str:
        if self.type.is_string:
            value = f'"{self.value}"' if self.value else ""
        else:
            value = self.value
        return f"{CALL_PREFIX}{self.type.token}({value});"


def parse_line(line: str) -> FieldDefinition:
    """Parse one field line. Raises UnknownFieldType or ValueError."""
    head, sep, rest = line.strip().partition("(")
    if not sep or not head.startswith(CALL_PREFIX):
        raise UnknownFieldType(f"Unknown type: {head!r}")
    field_type = type_for_token(head[len(CALL_PREFIX):])

    value = rest.rpartition(")")[0] if ")" in rest else rest
    value = value.strip()
    if field_type.is_string:
        value = value.replace('"', "")
    # Validates the literal now instead of at replay time.
    encode_value(field_type, value)
    return FieldDefinition(field_type, value)


def structure_filename(opcode: OpCode) -> str:
    return f"{opcode.value:04d} - {opcode.name}.txt"


class StructureStore:
    """Owns the structure file for one opcode.

    The file handle is opened per call and never held, so the operator can
    edit the file between runs.
    """

    def __init__(self, directory: str | Path, opcode: OpCode):
        self.directory = Path(directory)
        self.opcode = opcode
        self.fields: list[FieldDefinition] = []

    @property
    def path(self) -> Path:
        return self.directory / structure_filename(self.opcode)

    def load_or_create(self) -> list[FieldDefinition]:
        """Load the stored fields, creating an empty file on first use."""
        path = self.path
        try:
            if not path.exists():
                self.directory.mkdir(parents=True, exist_ok=True)
                header = [PROVENANCE_LINE, STUB_TEMPLATE.format(name=self.opcode.name)]
                path.write_text("\n".join(header) + "\n", encoding="utf-8")
                log.info("Created structure file %s", path)
                self.fields = []
                return []
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise StructureFileError(f"Can't load {path}: {e}") from e

        fields: list[FieldDefinition] = []
        for lineno, line in enumerate(lines[HEADER_LINES:], start=HEADER_LINES + 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                fields.append(parse_line(line))
            except UnknownFieldType as e:
                log.warning("%s:%d: %s, skipping line: %s", path.name, lineno, e, line)
            except ValueError as e:
                log.warning("%s:%d: couldn't parse value (%s), skipping line: %s",
                            path.name, lineno, e, line)

        log.info("Loaded %d fields from %s", len(fields), path)
        self.fields = fields
        return list(fields)

    def append(self, definition: FieldDefinition) -> None:
        """Append one field line to the file and the in-memory list."""
        self._append_line(definition.to_line())
        self.fields.append(definition)

    def append_placeholder(self, hint_token: str, offset: int) -> None:
        """Mark an unmapped hint in the file. Not a field; skipped on load."""
        self._append_line(f"# Unknown hint {hint_token} at offset {offset}")

    def _append_line(self, line: str) -> None:
        path = self.path
        try:
            # "r+" so a file removed mid-session is an error, not a headerless new file.
            with path.open("r+b") as f:
                f.seek(0, 2)
                if f.tell():
                    f.seek(-1, 2)
                    if f.read(1) != b"\n":
                        f.write(b"\n")
                f.write((line + "\n").encode("utf-8"))
        except OSError as e:
            raise StructureFileError(f"Can't append to {path}: {e}") from e

    def lines(self) -> list[str]:
        """Current file contents, for display."""
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise StructureFileError(f"Can't read {self.path}: {e}") from e
