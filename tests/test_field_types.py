"""Tests for the hint/type tables and field encoders."""

import struct

import pytest

from packet_resolver.errors import UnknownFieldType
from packet_resolver.protocol.field_types import (
    FieldType,
    Hint,
    encode_value,
    hint_from_token,
    type_for_hint,
    type_for_token,
)


@pytest.mark.parametrize("token, field_type", [
    ("Decode1", FieldType.BYTE),
    ("Decode2", FieldType.SHORT),
    ("Decode4", FieldType.INT),
    ("Decodef", FieldType.FLOAT),
    ("Decode8", FieldType.LONG),
    ("DecodeStr", FieldType.UNICODE_STRING),
    ("DecodeStrA", FieldType.STRING),
])
def test_hint_to_type(token, field_type):
    assert type_for_hint(hint_from_token(token)) is field_type


def test_unknown_hint_token():
    assert hint_from_token("DecodeBuffer") is None
    assert type_for_hint(None) is FieldType.UNKNOWN
    assert type_for_hint(Hint.NONE) is FieldType.UNKNOWN


def test_type_tokens():
    assert type_for_token("UnicodeString") is FieldType.UNICODE_STRING
    assert type_for_token("Int") is FieldType.INT
    with pytest.raises(UnknownFieldType):
        type_for_token("Integer")
    with pytest.raises(UnknownFieldType):
        type_for_token("Unknown")


def test_fixed_widths():
    for field_type in (FieldType.BYTE, FieldType.SHORT, FieldType.INT, FieldType.LONG, FieldType.FLOAT):
        assert len(encode_value(field_type, "0")) == field_type.width


def test_defaults():
    assert FieldType.INT.default == "0"
    assert FieldType.STRING.default == ""
    assert FieldType.UNICODE_STRING.default == ""


def test_integer_encoding_little_endian():
    assert encode_value(FieldType.SHORT, "258") == b"\x02\x01"
    assert encode_value(FieldType.INT, "-1") == b"\xff\xff\xff\xff"
    assert encode_value(FieldType.LONG, "0x10") == b"\x10" + b"\x00" * 7
    assert encode_value(FieldType.BYTE, "") == b"\x00"


def test_float_encoding():
    assert encode_value(FieldType.FLOAT, "1.5") == struct.pack("<f", 1.5)


def test_string_encoding():
    assert encode_value(FieldType.STRING, '"abc"') == b"\x03\x00abc"
    assert encode_value(FieldType.STRING, "") == b"\x00\x00"


def test_unicode_string_encoding():
    assert encode_value(FieldType.UNICODE_STRING, "hi") == b"\x02\x00h\x00i\x00"
    assert encode_value(FieldType.UNICODE_STRING, "") == b"\x00\x00"


@pytest.mark.parametrize("field_type, text", [
    (FieldType.BYTE, "256"),
    (FieldType.BYTE, "-1"),
    (FieldType.SHORT, "40000"),
    (FieldType.INT, "abc"),
    (FieldType.FLOAT, "nope"),
    (FieldType.FLOAT, "1e300"),
    (FieldType.STRING, "a" * 70000),
    (FieldType.UNICODE_STRING, "a" * 70000),
])
def test_bad_literals(field_type, text):
    with pytest.raises(ValueError):
        encode_value(field_type, text)


def test_unknown_type_has_no_encoding():
    with pytest.raises(ValueError):
        encode_value(FieldType.UNKNOWN, "0")
