"""
packet-resolver - command line entry point.

Connects to the peer, then resolves one opcode (or opens the console).

Usage:
    python -m packet_resolver 81 --host 127.0.0.1 --port 20001
    python -m packet_resolver 0x0081 --idle-timeout 5        # stop after 5s of silence
    python -m packet_resolver --tui --opcodes opcodes.json   # interactive console
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from packet_resolver.config import DEFAULT_STRUCTURES_DIR, HEADER_LENGTH, ResolverConfig
from packet_resolver.errors import InvalidOpCodeFormat, StructureFileError
from packet_resolver.protocol.opcodes import OpCodeRegistry
from packet_resolver.resolver.engine import ResolveState, resolve
from packet_resolver.session.transport import Session, TcpSession

log = logging.getLogger("packet_resolver")

EXIT_ACCEPTED = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve an outbound packet layout from the peer's decode errors",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("opcode", nargs="?", default=None,
                        help="Opcode: 81, 8100 (wire order), 0x81 or 0x0081")
    parser.add_argument("--host", default="127.0.0.1", help="Peer host")
    parser.add_argument("--port", type=int, default=20001, help="Peer port")
    parser.add_argument("--dir", type=Path, default=Path(DEFAULT_STRUCTURES_DIR),
                        help=f"Structure file directory (default: {DEFAULT_STRUCTURES_DIR})")
    parser.add_argument("--header-length", type=int, default=HEADER_LENGTH,
                        help=f"Bytes before the payload in reported offsets (default: {HEADER_LENGTH})")
    parser.add_argument("--idle-timeout", type=float, default=None,
                        help="Seconds of silence after a send that count as accepted")
    parser.add_argument("--opcodes", type=Path, default=None,
                        help="JSON file with opcode names")
    parser.add_argument("--tui", action="store_true",
                        help="Open the interactive console")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ResolverConfig:
    return ResolverConfig(
        structures_dir=args.dir,
        header_length=args.header_length,
        idle_timeout=args.idle_timeout,
        opcodes_file=args.opcodes,
    )


def run_once(command: str, session: Session, config: ResolverConfig,
             registry: OpCodeRegistry | None) -> int:
    """Resolve one opcode until accepted, aborted, cancelled or Ctrl+C."""
    try:
        engine = resolve(command, session, config, registry)
    except InvalidOpCodeFormat as e:
        log.error("%s", e)
        return EXIT_USAGE
    except OSError as e:
        # Structure file or first send
        log.error("%s", e)
        return EXIT_ABORTED

    try:
        while not engine.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        log.info("Stopped by user")
        engine.cancel()

    log.info(
        "%s: %s, %d fields on disk (%d new) -> %s",
        engine.opcode, engine.state.name, len(engine.store.fields),
        engine.fields_added, engine.store.path,
    )
    if engine.state is ResolveState.ABORTED:
        return EXIT_ABORTED
    if engine.state is ResolveState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_ACCEPTED


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.tui and not args.opcode:
        parser.error("an opcode is required unless --tui is given")

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = config_from_args(args)
    registry = OpCodeRegistry.from_json(config.opcodes_file) if config.opcodes_file else None

    session = TcpSession(args.host, args.port)
    try:
        session.connect()
    except OSError as e:
        log.error("Can't connect to %s:%d: %s", args.host, args.port, e)
        return EXIT_ABORTED

    try:
        if args.tui:
            from packet_resolver.console.app import ResolverConsole

            # Console output would tear the TUI; its own log panel takes over.
            logging.getLogger().handlers.clear()
            ResolverConsole(session, config, registry, command=args.opcode).run()
            return EXIT_ACCEPTED
        return run_once(args.opcode, session, config, registry)
    except StructureFileError as e:
        log.error("%s", e)
        return EXIT_ABORTED
    except OSError as e:
        log.error("Session failed: %s", e)
        return EXIT_ABORTED
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
