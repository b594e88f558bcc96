"""msc-bridge CLI entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Iterator, List, Optional, TextIO

from .console import TracerConsole
from .errors import TracerError
from .instance import TracerStatus
from .manager import DEFAULT_COMMAND, TracerConfig, TracerManager
from .names import NameTables

LOG = logging.getLogger("msc_bridge.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _env_poll_ms() -> int:
    raw = os.environ.get("MSC_BRIDGE_POLL_MS", "200")
    try:
        return int(raw)
    except ValueError:
        return 200


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay simulation traces to per-node sequence-chart tracers")
    parser.add_argument("--nodes", type=int, required=True, help="Number of simulated nodes")
    parser.add_argument("--names", type=Path, help="JSON file with process/message/semaphore/state names")
    parser.add_argument("--begin-time", type=int, help="Run start time in ns (overrides the names file)")
    parser.add_argument(
        "--command",
        default=os.environ.get("MSC_BRIDGE_COMMAND", DEFAULT_COMMAND),
        help=f"Tracer command; the port is appended (default '{DEFAULT_COMMAND}')",
    )
    parser.add_argument("--poll-ms", type=int, default=_env_poll_ms(), help="Poll interval in ms (default 200)")
    parser.add_argument(
        "--launch",
        type=int,
        action="append",
        default=[],
        metavar="NODE",
        help="Launch the tracer for NODE at startup (repeatable)",
    )
    parser.add_argument("--trace", help="Replay trace records from a file ('-' for stdin) instead of the console")
    parser.add_argument(
        "--wait-connected",
        type=float,
        default=10.0,
        metavar="SECONDS",
        help="With --trace, wait this long for launched tracers to connect before replaying",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("MSC_BRIDGE_LOG", "INFO"),
        help="Logging level (default INFO)",
    )
    return parser


def _read_lines(stream: TextIO) -> Iterator[str]:
    for line in stream:
        yield line.rstrip("\r\n")


def _replay(manager: TracerManager, source: str, launched: List[int], wait: float) -> int:
    for node_id in launched:
        if not manager.wait_for(node_id, TracerStatus.CONNECTED, wait):
            LOG.warning("tracer on node %d did not connect within %.1fs", node_id, wait)
    if source == "-":
        written = manager.replay(_read_lines(sys.stdin))
    else:
        with open(source, "r", encoding="utf-8") as handle:
            written = manager.replay(_read_lines(handle))
    LOG.info("replayed trace: %d command(s) delivered", written)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    names = NameTables.from_json(args.names) if args.names else NameTables()
    config = TracerConfig(command=args.command, poll_interval=max(1, args.poll_ms) / 1000.0)
    manager = TracerManager(args.nodes, names, config=config, begin_time=args.begin_time)
    manager.open()
    try:
        launched = []
        for node_id in args.launch:
            try:
                if manager.launch(node_id) is not None:
                    launched.append(node_id)
            except TracerError as exc:
                LOG.error("%s", exc)
        if args.trace:
            return _replay(manager, args.trace, launched, args.wait_connected)
        return TracerConsole(manager).run()
    except KeyboardInterrupt:
        print()
        return 0
    finally:
        manager.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
