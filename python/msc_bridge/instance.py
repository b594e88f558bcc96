"""Per-node tracer state.

Each simulated node owns one :class:`TracerInstance`.  Its state is a tagged
variant (:class:`Idle`, :class:`Opened`, :class:`Connected`, :class:`Closed`),
so a port or a socket only exists in the states that can hold one.  All
transitions are compare-and-transition operations under the instance lock.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Optional, Union

from .connection import ConnectAttempt, close_quietly, send_nowait

LOGGER = logging.getLogger(__name__)


class TracerStatus(enum.Enum):
    IDLE = "idle"
    OPENED = "opened"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True)
class Idle:
    status = TracerStatus.IDLE


@dataclass(frozen=True)
class Opened:
    """Process launched on ``port``; control connection not (yet) established."""

    port: int
    attempt: Optional[ConnectAttempt] = None
    status = TracerStatus.OPENED


@dataclass(frozen=True)
class Connected:
    port: int
    sock: socket.socket
    status = TracerStatus.CONNECTED


@dataclass(frozen=True)
class Closed:
    """Process exited; waiting for the poll loop to reap it."""

    port: int
    sock: Optional[socket.socket] = None
    status = TracerStatus.CLOSED


TracerState = Union[Idle, Opened, Connected, Closed]

IDLE = Idle()


def _held_socket(state: TracerState) -> Optional[socket.socket]:
    if isinstance(state, (Connected, Closed)):
        return state.sock
    if isinstance(state, Opened) and state.attempt is not None:
        return state.attempt.sock
    return None


class TracerInstance:
    """Connection state of the tracer attached to one simulated node."""

    def __init__(self, node_id: int) -> None:
        self.node_id = node_id
        self._state: TracerState = IDLE
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"TracerInstance(node_id={self.node_id}, status={self.status.name}, port={self.port})"

    @property
    def state(self) -> TracerState:
        with self._lock:
            return self._state

    @property
    def status(self) -> TracerStatus:
        return self.state.status

    @property
    def port(self) -> int:
        state = self.state
        return 0 if isinstance(state, Idle) else state.port

    @property
    def connection(self) -> Optional[socket.socket]:
        return _held_socket(self.state)

    def reserve(self, port: int) -> bool:
        """IDLE -> OPENED on ``port``; ``False`` if the instance is busy."""
        with self._lock:
            if not isinstance(self._state, Idle):
                return False
            self._state = Opened(port)
        return True

    def compare_and_set(self, expected: TracerState, new_state: TracerState) -> bool:
        with self._lock:
            if self._state is not expected:
                return False
            self._state = new_state
        return True

    def write(self, data: bytes) -> bool:
        """Write on the live connection, demoting to OPENED if the write fails."""
        with self._lock:
            state = self._state
            if not isinstance(state, Connected):
                return False
            if send_nowait(state.sock, data):
                return True
            close_quietly(state.sock)
            self._state = Opened(state.port)
        LOGGER.info("lost control connection to tracer on node %d (port %d)", self.node_id, state.port)
        return False

    def mark_closed(self) -> bool:
        """OPENED/CONNECTED -> CLOSED once the external process has exited."""
        with self._lock:
            state = self._state
            if not isinstance(state, (Opened, Connected)):
                return False
            if isinstance(state, Opened) and state.attempt is not None:
                sock = state.attempt.detach()
            else:
                sock = _held_socket(state)
            self._state = Closed(state.port, sock)
        return True

    def reap(self) -> Optional[int]:
        """CLOSED -> IDLE, closing any socket still held. Returns the released port."""
        with self._lock:
            state = self._state
            if not isinstance(state, Closed):
                return None
            close_quietly(state.sock)
            self._state = IDLE
        return state.port

    def reset(self) -> None:
        """Force the instance back to IDLE from any state."""
        with self._lock:
            state = self._state
            if isinstance(state, Opened) and state.attempt is not None:
                state.attempt.close()
            else:
                close_quietly(_held_socket(state))
            self._state = IDLE
