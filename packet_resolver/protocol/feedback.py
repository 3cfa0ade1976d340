"""
Feedback parsing - pull (type, offset, hint) out of the peer's error text.

The peer's decoder reports where it failed like:
  ... [type=129][offset=6][hint=Decode2] ...

type is the opcode being decoded, offset the byte position of the field
that failed (header included), hint the primitive it tried to read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from packet_resolver.errors import MalformedFeedback
from packet_resolver.protocol.field_types import Hint, hint_from_token

FEEDBACK_PATTERN = re.compile(r"\[type=(\d+)\]\[offset=(\d+)\]\[hint=(\w+)\]")


@dataclass(frozen=True)
class FeedbackEvent:
    """One parsed peer diagnostic."""
    opcode: int
    offset: int
    hint_token: str
    hint: Hint | None  # None = token not in the hint table

    @property
    def is_clean(self) -> bool:
        """Peer reported no decode error."""
        return self.opcode == 0 or self.hint is Hint.NONE

    def __str__(self) -> str:
        return f"type=0x{self.opcode:04X} offset={self.offset} hint={self.hint_token}"


def parse_feedback(text: str) -> FeedbackEvent:
    match = FEEDBACK_PATTERN.search(text)
    if match is None:
        raise MalformedFeedback(f"Failed to parse error: {text!r}")

    opcode = int(match.group(1))
    if opcode > 0xFFFF:
        raise MalformedFeedback(f"Reported type out of range: {text!r}")
    token = match.group(3)
    return FeedbackEvent(
        opcode=opcode,
        offset=int(match.group(2)),
        hint_token=token,
        hint=hint_from_token(token),
    )


def format_feedback(opcode: int, offset: int, hint_token: str) -> str:
    """Render feedback text the way the peer does."""
    return f"[type={opcode}][offset={offset}][hint={hint_token}]"
