"""Tracer manager: owns the per-node instances, the poll loop and the workers."""

from __future__ import annotations

import logging
import queue
import shlex
import threading
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from .errors import TracerError, UnknownHandleError
from .grammar import DEFAULT_GRAMMARS, Grammar, command
from .instance import TracerInstance, TracerStatus
from .names import NameTables
from .poll import PollLoop
from .ports import PortAllocator, ProbePortAllocator
from .translator import DEFAULT_TIME_DIVISOR, EventTranslator
from .worker import Runner, WorkerExit, WorkerTask, run_command

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND = "msc-tracer -p"
KEEPALIVE_COMMAND = command("resume")


@dataclass
class TracerConfig:
    command: Union[str, Sequence[str]] = DEFAULT_COMMAND
    keepalive: str = KEEPALIVE_COMMAND
    poll_interval: float = 0.2
    host: str = "localhost"
    time_divisor: int = DEFAULT_TIME_DIVISOR

    def argv(self, port: int) -> List[str]:
        """Command line for a tracer listening on ``port``."""
        if isinstance(self.command, str):
            try:
                base = shlex.split(self.command)
            except ValueError as exc:
                raise TracerError(f"invalid tracer command {self.command!r}: {exc}") from exc
        else:
            base = list(self.command)
        if not base:
            raise TracerError("tracer command is empty")
        return base + [str(port)]


@dataclass(frozen=True)
class InstanceSnapshot:
    node_id: int
    status: TracerStatus
    port: int
    worker_alive: bool


class TracerManager:
    """Launches one visualization process per node and relays trace records.

    ``open()`` sizes the instance table and starts the poll loop;
    ``launch(node)`` allocates a port and starts that node's tracer;
    ``send(line)`` forwards one trace record; ``close()`` stops the poll loop
    and waits for every tracer process to exit.
    """

    def __init__(
        self,
        node_count: int,
        names: Optional[NameTables] = None,
        *,
        config: Optional[TracerConfig] = None,
        allocator: Optional[PortAllocator] = None,
        runner: Runner = run_command,
        begin_time: Optional[int] = None,
        grammars: Sequence[Grammar] = DEFAULT_GRAMMARS,
    ) -> None:
        if node_count < 0:
            raise ValueError("node_count must not be negative")
        self.node_count = node_count
        self.config = config or TracerConfig()
        self.allocator = allocator or ProbePortAllocator()
        self.translator = EventTranslator(
            names,
            begin_time=begin_time,
            time_divisor=self.config.time_divisor,
            grammars=grammars,
        )
        self.instances: List[TracerInstance] = []
        self._runner = runner
        self._workers: List[Optional[WorkerTask]] = []
        self._completions: "queue.Queue[WorkerExit]" = queue.Queue()
        self._poll: Optional[PollLoop] = None
        self._launch_lock = threading.Lock()

    def __enter__(self) -> "TracerManager":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._poll is not None

    def open(self) -> None:
        if self._poll is not None:
            raise TracerError("tracer manager already open")
        self.instances = [TracerInstance(node_id) for node_id in range(self.node_count)]
        self._workers = [None] * self.node_count
        self._poll = PollLoop(
            self.instances,
            self._completions,
            self._join_worker,
            keepalive=self.config.keepalive.encode("ascii"),
            interval=self.config.poll_interval,
            host=self.config.host,
        )
        self._poll.start()
        LOGGER.debug("tracer manager open for %d nodes", self.node_count)

    def close(self) -> None:
        poll = self._poll
        if poll is None:
            return
        poll.stop()
        self._poll = None
        pending = [worker for worker in self._workers if worker is not None]
        if any(worker.alive for worker in pending):
            LOGGER.info("waiting for %d tracer process(es) to exit", sum(worker.alive for worker in pending))
        for node_id in range(len(self._workers)):
            self._join_worker(node_id)
        while True:
            try:
                self._completions.get_nowait()
            except queue.Empty:
                break
        for instance in self.instances:
            instance.reset()
        LOGGER.debug("tracer manager closed")

    def launch(self, node_id: int) -> Optional[int]:
        """Start the tracer for ``node_id``; returns its port, or ``None`` if it could not start."""
        instance = self._instance(node_id)
        with self._launch_lock:
            if instance.status is not TracerStatus.IDLE:
                LOGGER.warning("tracer on node %d is still running", node_id)
                return None
            port = self.allocator.find_free_port(self.instances)
            if port is None:
                LOGGER.warning("no free port for tracer on node %d", node_id)
                return None
            worker = WorkerTask(node_id, self.config.argv(port), self._completions, runner=self._runner)
            if not instance.reserve(port):
                LOGGER.warning("tracer on node %d is still running", node_id)
                return None
            self._workers[node_id] = worker
            try:
                worker.start()
            except Exception:
                self._workers[node_id] = None
                instance.reset()
                raise
        LOGGER.info("launched tracer for node %d on port %d", node_id, port)
        return port

    def send(self, line: str) -> bool:
        """Forward one raw trace record; ``True`` if a command was written."""
        return self.translator.send(line, self.instances)

    def replay(self, lines: Iterable[str]) -> int:
        """Send every line in turn; records naming unknown handles are skipped."""
        written = 0
        for line in lines:
            try:
                delivered = self.send(line)
            except UnknownHandleError as exc:
                LOGGER.warning("skipping trace record (%s): %.120s", exc, line.rstrip())
                continue
            if delivered:
                written += 1
        return written

    def status(self) -> List[InstanceSnapshot]:
        snapshots: List[InstanceSnapshot] = []
        for instance, worker in zip(self.instances, self._workers):
            state = instance.state
            snapshots.append(
                InstanceSnapshot(
                    node_id=instance.node_id,
                    status=state.status,
                    port=getattr(state, "port", 0),
                    worker_alive=worker is not None and worker.alive,
                )
            )
        return snapshots

    def wait_for(self, node_id: int, status: TracerStatus, timeout: float) -> bool:
        """Block until ``node_id`` reaches ``status`` or ``timeout`` seconds pass."""
        instance = self._instance(node_id)
        deadline = time.monotonic() + timeout
        while instance.status is not status:
            if time.monotonic() >= deadline:
                return False
            time.sleep(min(0.01, self.config.poll_interval))
        return True

    def _instance(self, node_id: int) -> TracerInstance:
        if self._poll is None:
            raise TracerError("tracer manager is not open")
        if not 0 <= node_id < len(self.instances):
            raise TracerError(f"node {node_id} out of range (0-{len(self.instances) - 1})")
        return self.instances[node_id]

    def _join_worker(self, node_id: int) -> None:
        worker = self._workers[node_id]
        if worker is None:
            return
        worker.join()
        self._workers[node_id] = None
