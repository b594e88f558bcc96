"""
Pytest configuration and fixtures for msc_bridge tests.
"""
import socket
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from msc_bridge import NameTables


class DummyTracerServer:
    """Stand-in for the visualization process: accepts control connections and records bytes."""

    def __init__(self, port: int = 0) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", port))
        self.port = self._sock.getsockname()[1]
        self._sock.listen(5)
        self._sock.settimeout(0.05)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._data = bytearray()
        self._conns: List[socket.socket] = []
        self.accepted = 0
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.settimeout(0.05)
            with self._lock:
                self._conns.append(conn)
                self.accepted += 1
            threading.Thread(target=self._read, args=(conn,), daemon=True).start()

    def _read(self, conn: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                chunk = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                break
            if not chunk:
                break
            with self._lock:
                self._data.extend(chunk)

    @property
    def text(self) -> str:
        with self._lock:
            return self._data.decode("utf-8")

    def wait_until(self, predicate: Callable[["DummyTracerServer"], bool], timeout: float = 3.0) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate(self):
                return True
            time.sleep(0.01)
        return predicate(self)

    def drop_connections(self) -> None:
        with self._lock:
            conns, self._conns = self._conns, []
        for conn in conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

    def stop(self) -> None:
        self._stop.set()
        self._thread.join(timeout=1.0)
        self._sock.close()
        self.drop_connections()


class BlockingRunner:
    """Runner for WorkerTask: serves the allocated port in-process until released."""

    def __init__(self) -> None:
        self.servers: Dict[int, DummyTracerServer] = {}
        self.calls: List[List[str]] = []
        self._release: Dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    def __call__(self, argv: Sequence[str]) -> Optional[int]:
        port = int(argv[-1])
        release = threading.Event()
        server = DummyTracerServer(port)
        with self._lock:
            self.calls.append(list(argv))
            self.servers[port] = server
            self._release[port] = release
        release.wait()
        server.stop()
        return 0

    def release(self, port: int) -> None:
        deadline = time.time() + 2.0
        while port not in self._release and time.time() < deadline:
            time.sleep(0.01)
        self._release[port].set()

    def release_all(self) -> None:
        with self._lock:
            events = list(self._release.values())
        for event in events:
            event.set()

    def server(self, port: int, timeout: float = 2.0) -> DummyTracerServer:
        deadline = time.time() + timeout
        while port not in self.servers and time.time() < deadline:
            time.sleep(0.01)
        return self.servers[port]


def free_ports(count: int) -> List[int]:
    socks = []
    try:
        for _ in range(count):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.bind(("127.0.0.1", 0))
            socks.append(sock)
        return [sock.getsockname()[1] for sock in socks]
    finally:
        for sock in socks:
            sock.close()


@pytest.fixture
def names() -> NameTables:
    return NameTables(
        processes=("Alice", "Bob", "env"),
        messages=("Ack", "Ping", "T_retry"),
        semaphores=("mutex", "slots"),
        states=("idle", "waiting"),
    )


@pytest.fixture
def dummy_server():
    server = DummyTracerServer()
    yield server
    server.stop()


@pytest.fixture
def blocking_runner():
    runner = BlockingRunner()
    yield runner
    runner.release_all()


@pytest.fixture
def ports() -> Callable[[int], List[int]]:
    return free_ports


@pytest.fixture
def make_server():
    servers: List[DummyTracerServer] = []

    def factory(port: int = 0) -> DummyTracerServer:
        server = DummyTracerServer(port)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()
