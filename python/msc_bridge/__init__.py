"""
msc_bridge - relay simulation traces to per-node sequence-chart tracers.

For every simulated node the bridge can launch an external visualization
process, keep a control connection to it alive, and forward translated trace
records over that connection.  Modules:

    ports.py       → listening-port selection (probe-then-release)
    instance.py    → per-node tracer state machine
    connection.py  → non-blocking connect / write helpers
    worker.py      → one thread per running tracer process
    poll.py        → background connect / keepalive / reap loop
    grammar.py     → trace record grammars and command renderers
    translator.py  → record → command translation and delivery
    manager.py     → lifecycle owner (open / launch / send / close)
    names.py       → engine-owned symbol tables
    window.py      → windowing collaborator interface
    console.py     → interactive operator console
"""

from .errors import TracerError, UnknownHandleError  # noqa: F401
from .grammar import DEFAULT_GRAMMARS, Grammar, command  # noqa: F401
from .instance import TracerInstance, TracerStatus  # noqa: F401
from .manager import InstanceSnapshot, TracerConfig, TracerManager  # noqa: F401
from .names import NameTables  # noqa: F401
from .ports import PortAllocator, ProbePortAllocator, SequencePortAllocator  # noqa: F401
from .translator import EventTranslator  # noqa: F401
from .window import HeadlessWindow, WindowGeometry, WindowHost  # noqa: F401

__all__ = [
    "TracerError",
    "UnknownHandleError",
    "DEFAULT_GRAMMARS",
    "Grammar",
    "command",
    "TracerInstance",
    "TracerStatus",
    "InstanceSnapshot",
    "TracerConfig",
    "TracerManager",
    "NameTables",
    "PortAllocator",
    "ProbePortAllocator",
    "SequencePortAllocator",
    "EventTranslator",
    "HeadlessWindow",
    "WindowGeometry",
    "WindowHost",
]

__version__ = "0.1.0"
