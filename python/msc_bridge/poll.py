"""Background loop driving every tracer instance through its lifecycle."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional, Sequence

from .connection import ConnectAttempt
from .instance import Closed, Connected, Opened, TracerInstance
from .worker import WorkerExit

LOGGER = logging.getLogger(__name__)


class PollLoop:
    """Single thread that connects, keeps alive and reaps tracer instances.

    Each tick first drains the worker completion queue (marking exited
    tracers CLOSED), then visits every instance once:

    * OPENED    -> advance the non-blocking connect, CONNECTED on success
    * CONNECTED -> send the keepalive, back to OPENED if the write fails
    * CLOSED    -> join the worker, close the socket, back to IDLE
    """

    def __init__(
        self,
        instances: Sequence[TracerInstance],
        completions: "queue.Queue[WorkerExit]",
        join_worker: Callable[[int], None],
        *,
        keepalive: bytes,
        interval: float,
        host: str = "localhost",
    ) -> None:
        self._instances = instances
        self._completions = completions
        self._join_worker = join_worker
        self._keepalive = keepalive
        self._interval = interval
        self._host = host
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="msc-tracer-poll", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def _run(self) -> None:
        LOGGER.debug("poll loop started (interval %.3fs)", self._interval)
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                LOGGER.exception("poll tick failed")
            self._stop.wait(self._interval)
        LOGGER.debug("poll loop stopped")

    def tick(self) -> None:
        self.drain_completions()
        for instance in self._instances:
            state = instance.state
            if isinstance(state, Opened):
                self._connect(instance, state)
            elif isinstance(state, Connected):
                instance.write(self._keepalive)
            elif isinstance(state, Closed):
                self._reap(instance)

    def drain_completions(self) -> None:
        while True:
            try:
                exit_info = self._completions.get_nowait()
            except queue.Empty:
                break
            instance = self._instances[exit_info.node_id]
            if instance.mark_closed():
                LOGGER.info(
                    "tracer on node %d exited (code %s)",
                    exit_info.node_id,
                    exit_info.returncode,
                )

    def _connect(self, instance: TracerInstance, state: Opened) -> None:
        attempt = state.attempt
        if attempt is None:
            attempt = ConnectAttempt(self._host, state.port)
            fresh = Opened(state.port, attempt)
            if not instance.compare_and_set(state, fresh):
                return
            state = fresh
        if not attempt.step():
            return
        sock = attempt.detach()
        assert sock is not None
        if instance.compare_and_set(state, Connected(state.port, sock)):
            LOGGER.info("connected to tracer on node %d (port %d)", instance.node_id, state.port)
        else:
            sock.close()

    def _reap(self, instance: TracerInstance) -> None:
        self._join_worker(instance.node_id)
        port = instance.reap()
        if port is not None:
            LOGGER.info("tracer on node %d released port %d", instance.node_id, port)
