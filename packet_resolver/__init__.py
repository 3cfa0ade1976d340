"""
packet-resolver - rebuild an outbound packet layout from the peer's decode errors.

Components:
    protocol/   opcode codec, field type table, feedback parser, packet buffer
    resolver/   structure store + resolve engine
    session/    transport boundary (loopback, TCP)
    console/    textual operator console
    main.py     command line entry point
"""

__version__ = "0.1.0"
