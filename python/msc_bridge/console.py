"""Interactive operator console for a running tracer manager."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout
from tabulate import tabulate

from .errors import TracerError
from .manager import InstanceSnapshot, TracerManager


def render_status_table(snapshots: Sequence[InstanceSnapshot]) -> str:
    if not snapshots:
        return "no tracer nodes"
    rows = [
        [snap.node_id, snap.status.name, snap.port or "-", "yes" if snap.worker_alive else "no"]
        for snap in snapshots
    ]
    return tabulate(rows, headers=["node", "status", "port", "worker"], tablefmt="github")


@dataclass
class ConsoleCommand:
    name: str
    usage: str
    description: str
    handler: Callable[[List[str]], bool]

    def format_help(self) -> str:
        return f"{self.usage:<18} {self.description}"


class TracerConsole:
    """Prompt loop: ``launch``, ``status``, ``send``, ``help``, ``quit``."""

    def __init__(self, manager: TracerManager) -> None:
        self.manager = manager
        self.commands: Dict[str, ConsoleCommand] = {}
        for cmd in (
            ConsoleCommand("launch", "launch <node>...", "start the tracer for one or more nodes", self._launch),
            ConsoleCommand("status", "status", "show every tracer instance", self._status),
            ConsoleCommand("send", "send <record>", "forward one raw trace record", self._send),
            ConsoleCommand("help", "help", "list commands", self._help),
            ConsoleCommand("quit", "quit", "leave the console", lambda argv: False),
        ):
            self.commands[cmd.name] = cmd
        self.commands["exit"] = self.commands["quit"]

    def run(self) -> int:
        session: PromptSession = PromptSession("msc> ", history=InMemoryHistory())
        while True:
            try:
                with patch_stdout():
                    line = session.prompt()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0
            if not self.dispatch(line):
                return 0

    def dispatch(self, line: str) -> bool:
        """Run one console line; ``False`` means the console should exit."""
        stripped = line.strip()
        if not stripped:
            return True
        name, _, rest = stripped.partition(" ")
        cmd = self.commands.get(name)
        if cmd is None:
            print(f"Unknown command: {name} (try 'help')")
            return True
        # records contain quotes; hand them over untouched
        if name == "send":
            argv = [rest.strip()] if rest.strip() else []
        else:
            try:
                argv = shlex.split(rest)
            except ValueError as exc:
                print(f"Parse error: {exc}")
                return True
        try:
            return cmd.handler(argv)
        except TracerError as exc:
            print(f"error: {exc}")
            return True

    def _launch(self, argv: List[str]) -> bool:
        if not argv:
            print("usage: launch <node>...")
            return True
        for token in argv:
            try:
                node_id = int(token)
            except ValueError:
                print(f"error: invalid node id {token!r}")
                continue
            port = self.manager.launch(node_id)
            if port is None:
                print(f"node {node_id}: not launched (see log)")
            else:
                print(f"node {node_id}: tracer on port {port}")
        return True

    def _status(self, argv: List[str]) -> bool:
        print(render_status_table(self.manager.status()))
        return True

    def _send(self, argv: List[str]) -> bool:
        if not argv:
            print("usage: send <record>")
            return True
        delivered = self.manager.send(argv[0])
        print("sent" if delivered else "not delivered")
        return True

    def _help(self, argv: List[str]) -> bool:
        for name in sorted(self.commands):
            if name == "exit":
                continue
            print("  " + self.commands[name].format_help())
        return True
