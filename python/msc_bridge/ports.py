"""Listening-port selection for tracer processes.

The default allocator probes: it binds a throw-away socket to a candidate port
and releases it straight away, leaving the real bind to the visualization
process.  Another process may grab the port in between; nothing here reserves
ports across processes.
"""

from __future__ import annotations

import logging
import socket
from typing import AbstractSet, Iterable, Optional, Sequence

from .connection import resolve
from .instance import TracerInstance

LOGGER = logging.getLogger(__name__)

MAX_PORT = 0xFFFF


def held_ports(instances: Iterable[TracerInstance]) -> set[int]:
    return {instance.port for instance in instances if instance.port}


def probe_port(port: int) -> bool:
    """Return ``True`` if a passive, address-reusable socket can bind ``port``."""
    for family, socktype, proto, _, sockaddr in resolve(None, port, passive=True):
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError:
            continue
        try:
            sock.setblocking(False)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
        except OSError:
            continue
        else:
            return True
        finally:
            sock.close()
    return False


class PortAllocator:
    """Chooses the port a newly launched tracer will listen on."""

    def find_free_port(self, instances: Iterable[TracerInstance]) -> Optional[int]:
        return self.select(held_ports(instances))

    def select(self, used: AbstractSet[int]) -> Optional[int]:
        raise NotImplementedError("PortAllocator must implement select()")


class ProbePortAllocator(PortAllocator):
    """Scan from ``high`` down to ``low`` and return the first port that binds."""

    def __init__(self, low: int = 1, high: int = MAX_PORT) -> None:
        if not 1 <= low <= high <= MAX_PORT:
            raise ValueError(f"invalid port range {low}-{high}")
        self.low = low
        self.high = high

    def select(self, used: AbstractSet[int]) -> Optional[int]:
        for port in range(self.high, self.low - 1, -1):
            if port in used:
                continue
            if probe_port(port):
                return port
        LOGGER.debug("no bindable port in %d-%d (%d held by tracers)", self.low, self.high, len(used))
        return None


class SequencePortAllocator(PortAllocator):
    """Hand out ports from a fixed list without probing.

    Useful when the tracer ports are dictated by a firewall rule, and for
    deterministic tests.
    """

    def __init__(self, ports: Sequence[int]) -> None:
        self.ports = tuple(ports)

    def select(self, used: AbstractSet[int]) -> Optional[int]:
        for port in self.ports:
            if port not in used:
                return port
        return None
