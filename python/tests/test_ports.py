import socket

import pytest

from msc_bridge.instance import TracerInstance
from msc_bridge.ports import ProbePortAllocator, SequencePortAllocator, held_ports, probe_port


def _listen_any(port: int = 0) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("0.0.0.0", port))
    sock.listen(1)
    return sock


def test_held_ports_ignores_idle_instances():
    instances = [TracerInstance(i) for i in range(3)]
    instances[0].reserve(6000)
    instances[2].reserve(6002)
    assert held_ports(instances) == {6000, 6002}


def test_probe_port_detects_listener(ports):
    listener = _listen_any()
    try:
        assert not probe_port(listener.getsockname()[1])
    finally:
        listener.close()
    free = ports(1)[0]
    assert probe_port(free)


def test_probe_allocator_scans_downwards(ports):
    free = ports(1)[0]
    allocator = ProbePortAllocator(low=free, high=free)
    assert allocator.select(set()) == free


def test_probe_allocator_skips_ports_held_by_tracers(ports):
    free = ports(1)[0]
    instances = [TracerInstance(0)]
    instances[0].reserve(free)
    allocator = ProbePortAllocator(low=free, high=free)
    assert allocator.find_free_port(instances) is None


def test_probe_allocator_skips_busy_port():
    listener = _listen_any()
    busy = listener.getsockname()[1]
    try:
        allocator = ProbePortAllocator(low=busy, high=busy)
        assert allocator.select(set()) is None
    finally:
        listener.close()


def test_probe_allocator_probe_is_released(ports):
    free = ports(1)[0]
    allocator = ProbePortAllocator(low=free, high=free)
    assert allocator.select(set()) == free
    # the probe socket is gone, the real listener can bind
    listener = _listen_any(free)
    listener.close()


def test_probe_allocator_rejects_bad_range():
    with pytest.raises(ValueError):
        ProbePortAllocator(low=0, high=10)
    with pytest.raises(ValueError):
        ProbePortAllocator(low=10, high=5)
    with pytest.raises(ValueError):
        ProbePortAllocator(low=1, high=70000)


def test_sequence_allocator_hands_out_unused_ports():
    allocator = SequencePortAllocator([7001, 7002])
    instances = [TracerInstance(i) for i in range(3)]
    assert allocator.find_free_port(instances) == 7001
    instances[0].reserve(7001)
    assert allocator.find_free_port(instances) == 7002
    instances[1].reserve(7002)
    assert allocator.find_free_port(instances) is None
