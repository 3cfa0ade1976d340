"""
Resolver error taxonomy.

Validation errors (bad feedback, stray opcodes, offset drift) never escape
the engine; they end up as ResolveEngine.abort_error. File I/O failures are
the exception and propagate as StructureFileError.
"""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for all resolver errors."""


class InvalidOpCodeFormat(ResolverError, ValueError):
    """Command token is not one of the accepted opcode literal forms."""


class UnknownFieldType(ResolverError):
    """Structure file line names a type token we don't know."""


class MalformedFeedback(ResolverError, ValueError):
    """Peer diagnostic text doesn't match the feedback pattern."""


class UnexpectedOpCode(ResolverError):
    """Feedback reported an opcode other than the one being resolved."""

    def __init__(self, expected: int, reported: int):
        super().__init__(f"expected opcode 0x{expected:04X}, feedback reported 0x{reported:04X}")
        self.expected = expected
        self.reported = reported


class OffsetMismatch(ResolverError):
    """Feedback offset disagrees with the local buffer length + header."""

    def __init__(self, expected: int, reported: int):
        super().__init__(f"offset {reported} does not match packet length {expected}")
        self.expected = expected
        self.reported = reported


class UnknownHint(ResolverError):
    """Peer reported a hint token with no field type mapping."""

    def __init__(self, token: str, offset: int):
        super().__init__(f"unknown hint {token!r} at offset {offset}")
        self.token = token
        self.offset = offset


class StructureFileError(ResolverError, OSError):
    """Reading or writing a structure definition file failed."""
