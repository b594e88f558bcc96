"""Worker threads that run one visualization process each."""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

LOGGER = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], Optional[int]]


@dataclass(frozen=True)
class WorkerExit:
    node_id: int
    returncode: Optional[int]


def run_command(argv: Sequence[str]) -> int:
    """Run the visualization process and block until it exits."""
    return subprocess.call(list(argv))


class WorkerTask:
    """Runs the tracer command for one node and reports its exit.

    The task never touches instance state.  When the process ends (or cannot
    be started) it posts a :class:`WorkerExit` on the completion queue; the
    poll loop is the only consumer of that queue.
    """

    def __init__(
        self,
        node_id: int,
        argv: Sequence[str],
        completions: "queue.Queue[WorkerExit]",
        *,
        runner: Runner = run_command,
    ) -> None:
        self.node_id = node_id
        self.argv: List[str] = list(argv)
        self._completions = completions
        self._runner = runner
        self._thread = threading.Thread(target=self._run, name=f"msc-tracer-{node_id}", daemon=True)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is threading.current_thread():
            return
        self._thread.join(timeout)

    def _run(self) -> None:
        returncode: Optional[int] = None
        LOGGER.debug("node %d: running %s", self.node_id, " ".join(self.argv))
        try:
            returncode = self._runner(self.argv)
        except OSError as exc:
            LOGGER.error("node %d: cannot run tracer %r: %s", self.node_id, " ".join(self.argv), exc)
        finally:
            self._completions.put(WorkerExit(self.node_id, returncode))
        LOGGER.debug("node %d: tracer exited with %s", self.node_id, returncode)
