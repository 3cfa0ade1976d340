from packet_resolver.protocol.opcodes import OpCode, OpCodeRegistry, parse_opcode
from packet_resolver.protocol.field_types import FieldType, Hint, encode_value, type_for_hint
from packet_resolver.protocol.feedback import FeedbackEvent, parse_feedback, format_feedback
from packet_resolver.protocol.writer import PacketBuffer

__all__ = [
    "OpCode", "OpCodeRegistry", "parse_opcode",
    "FieldType", "Hint", "encode_value", "type_for_hint",
    "FeedbackEvent", "parse_feedback", "format_feedback",
    "PacketBuffer",
]
