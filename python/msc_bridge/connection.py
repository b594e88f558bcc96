"""Socket helpers for the control connection to a visualization process.

Everything here is non-blocking: a connect attempt is advanced one step per
poll tick and a write either goes out in one ``send`` or counts as failed.
"""

from __future__ import annotations

import errno
import logging
import socket
from typing import List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

AddressInfo = Tuple[int, int, int, str, tuple]

_CONNECT_DONE = {0, errno.EISCONN}
_CONNECT_PENDING = {errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK, errno.EINTR}


def close_quietly(sock: Optional[socket.socket]) -> None:
    if sock is None:
        return
    try:
        sock.close()
    except OSError:
        pass


def resolve(host: Optional[str], port: int, *, passive: bool = False) -> List[AddressInfo]:
    """Return stream addresses for ``host:port`` in both address families."""
    flags = socket.AI_PASSIVE if passive else 0
    try:
        return socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, flags)
    except socket.gaierror as exc:
        LOGGER.debug("address lookup for %s:%d failed: %s", host, port, exc)
        return []


def send_nowait(sock: socket.socket, data: bytes) -> bool:
    """Write ``data`` with a single non-blocking send; short writes count as failures."""
    try:
        sent = sock.send(data)
    except OSError as exc:
        LOGGER.debug("control write failed: %s", exc)
        return False
    return sent == len(data)


class ConnectAttempt:
    """Non-blocking connect to ``host:port`` that survives across poll ticks.

    The socket created for the current candidate address is kept while the
    connect is in progress.  A hard failure (``ECONNREFUSED`` and friends)
    drops that socket and moves on to the next resolved address, re-resolving
    once every candidate has been tried.
    """

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.sock: Optional[socket.socket] = None
        self._addresses: List[AddressInfo] = []
        self._index = 0

    def step(self) -> bool:
        """Advance the connect by one step; ``True`` once the socket is connected."""
        if self.sock is None and not self._open_next():
            return False
        assert self.sock is not None
        sockaddr = self._addresses[self._index][4]
        try:
            result = self.sock.connect_ex(sockaddr)
        except OSError as exc:
            result = exc.errno
        if result in _CONNECT_DONE:
            return True
        if result in _CONNECT_PENDING:
            return False
        LOGGER.debug(
            "connect to %s port %d failed: %s",
            sockaddr[0],
            self.port,
            errno.errorcode.get(result, result),
        )
        self.close()
        self._index += 1
        return False

    def detach(self) -> Optional[socket.socket]:
        """Hand over the socket; the attempt no longer owns it."""
        sock = self.sock
        self.sock = None
        return sock

    def close(self) -> None:
        close_quietly(self.sock)
        self.sock = None

    def _open_next(self) -> bool:
        if self._index >= len(self._addresses):
            self._addresses = resolve(self.host, self.port)
            self._index = 0
        while self._index < len(self._addresses):
            family, socktype, proto, _, _ = self._addresses[self._index]
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                LOGGER.debug("socket creation failed for family %s: %s", family, exc)
                self._index += 1
                continue
            sock.setblocking(False)
            self.sock = sock
            return True
        return False
