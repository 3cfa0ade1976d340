"""
Field Type Table - peer hint codes, field types and their wire encodings.

Two small lookup tables drive everything:
  HINT_TYPES   peer hint (Decode1, Decode2, ...) -> FieldType
  _ENCODERS    FieldType -> function(text) -> bytes

All integers are little-endian. Strings carry a u16 length prefix:
  String         u16 byte count + UTF-8 bytes
  UnicodeString  u16 char count + UTF-16LE code units
"""

from __future__ import annotations

import struct
from enum import Enum, IntEnum
from typing import Callable

from packet_resolver.errors import UnknownFieldType


class FieldType(Enum):
    """Primitive field types the peer can ask for.

    value = (source token, fixed width in bytes or None)
    """
    BYTE = ("Byte", 1)
    SHORT = ("Short", 2)
    INT = ("Int", 4)
    LONG = ("Long", 8)
    FLOAT = ("Float", 4)
    STRING = ("String", None)
    UNICODE_STRING = ("UnicodeString", None)
    UNKNOWN = ("Unknown", None)

    @property
    def token(self) -> str:
        return self.value[0]

    @property
    def width(self) -> int | None:
        return self.value[1]

    @property
    def is_string(self) -> bool:
        return self in (FieldType.STRING, FieldType.UNICODE_STRING)

    @property
    def default(self) -> str:
        """Sentinel literal for a freshly inferred field."""
        return "" if self.is_string else "0"


class Hint(IntEnum):
    """Hint codes reported by the peer's decoder."""
    NONE = 0
    DECODE1 = 1
    DECODE2 = 2
    DECODE4 = 3
    DECODEF = 4
    DECODE8 = 5
    DECODE_STR = 6
    DECODE_STRA = 7


HINT_TOKENS: dict[str, Hint] = {
    "None": Hint.NONE,
    "Decode1": Hint.DECODE1,
    "Decode2": Hint.DECODE2,
    "Decode4": Hint.DECODE4,
    "Decodef": Hint.DECODEF,
    "Decode8": Hint.DECODE8,
    "DecodeStr": Hint.DECODE_STR,
    "DecodeStrA": Hint.DECODE_STRA,
}

HINT_TYPES: dict[Hint, FieldType] = {
    Hint.DECODE1: FieldType.BYTE,
    Hint.DECODE2: FieldType.SHORT,
    Hint.DECODE4: FieldType.INT,
    Hint.DECODEF: FieldType.FLOAT,
    Hint.DECODE8: FieldType.LONG,
    Hint.DECODE_STR: FieldType.UNICODE_STRING,
    Hint.DECODE_STRA: FieldType.STRING,
}

_TOKEN_TYPES: dict[str, FieldType] = {
    ft.token: ft for ft in FieldType if ft is not FieldType.UNKNOWN
}


def hint_from_token(token: str) -> Hint | None:
    """Map a peer hint token to a Hint, or None if we've never seen it."""
    return HINT_TOKENS.get(token)


def type_for_hint(hint: Hint | None) -> FieldType:
    if hint is None:
        return FieldType.UNKNOWN
    return HINT_TYPES.get(hint, FieldType.UNKNOWN)


def type_for_token(token: str) -> FieldType:
    """Look up a structure-file type token ("Short", "UnicodeString", ...)."""
    try:
        return _TOKEN_TYPES[token]
    except KeyError:
        raise UnknownFieldType(f"Unknown type: {token!r}") from None


# ---- Encoders ----

def _pack(fmt: str, cast: Callable[[str], int | float]) -> Callable[[str], bytes]:
    def encode(text: str) -> bytes:
        try:
            return struct.pack(fmt, cast(text))
        except (struct.error, OverflowError) as e:
            raise ValueError(f"{text!r} out of range for {fmt}: {e}") from None
    return encode


def _unquote(text: str) -> str:
    return text.replace('"', "")


def _length_prefixed(data: bytes, units: int) -> bytes:
    if units > 0xFFFF:
        raise ValueError(f"string of {units} units doesn't fit a u16 length prefix")
    return struct.pack("<H", units) + data


def _encode_string(text: str) -> bytes:
    data = _unquote(text).encode("utf-8")
    return _length_prefixed(data, len(data))


def _encode_unicode_string(text: str) -> bytes:
    data = _unquote(text).encode("utf-16-le")
    return _length_prefixed(data, len(data) // 2)


def _parse_int(text: str) -> int:
    text = text.strip()
    if text.lower().lstrip("-").startswith("0x"):
        return int(text, 16)
    return int(text)


_ENCODERS: dict[FieldType, Callable[[str], bytes]] = {
    FieldType.BYTE: _pack("<B", _parse_int),
    FieldType.SHORT: _pack("<h", _parse_int),
    FieldType.INT: _pack("<i", _parse_int),
    FieldType.LONG: _pack("<q", _parse_int),
    FieldType.FLOAT: _pack("<f", float),
    FieldType.STRING: _encode_string,
    FieldType.UNICODE_STRING: _encode_unicode_string,
}


def encode_value(field_type: FieldType, text: str) -> bytes:
    """Encode a literal for the given type. Empty text means the type's default.

    Raises ValueError for literals that don't fit the type.
    """
    encoder = _ENCODERS.get(field_type)
    if encoder is None:
        raise ValueError(f"{field_type.token} fields have no encoding")
    if not field_type.is_string and not text.strip():
        text = field_type.default
    return encoder(text)
