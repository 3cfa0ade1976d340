"""
Resolver configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_STRUCTURES_DIR = "PacketStructures"

# Bytes in front of the payload as the peer counts offsets:
# transport header + 2-byte opcode.
HEADER_LENGTH = 6


@dataclass
class ResolverConfig:
    """Resolver behavior configuration."""
    # Where structure files live, one per opcode
    structures_dir: Path = Path(DEFAULT_STRUCTURES_DIR)
    # Added to the payload length when checking feedback offsets
    header_length: int = HEADER_LENGTH
    # Seconds of silence after a send that count as acceptance (None = wait forever)
    idle_timeout: float | None = None
    # Optional JSON file with opcode names
    opcodes_file: Path | None = None
