"""Symbol tables owned by the simulation engine.

Trace records carry small integer handles for processes, messages (timer names
share the message table), semaphores and states.  The engine fills these tables
before the run starts; the translator only reads them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Union

from .errors import UnknownHandleError

NameTable = Union[Sequence[str], Mapping[int, str]]

_TABLE_KEYS = ("processes", "messages", "semaphores", "states")


def _coerce_table(value: Any, key: str) -> NameTable:
    if value is None:
        return ()
    if isinstance(value, list):
        return tuple(str(entry) for entry in value)
    if isinstance(value, dict):
        return {int(handle): str(name) for handle, name in value.items()}
    raise ValueError(f"{key} must be a list or an object keyed by handle")


@dataclass
class NameTables:
    """Handle -> display name lookups plus the run's time origin (ns)."""

    processes: NameTable = field(default_factory=tuple)
    messages: NameTable = field(default_factory=tuple)
    semaphores: NameTable = field(default_factory=tuple)
    states: NameTable = field(default_factory=tuple)
    begin_time: int = 0

    def process(self, handle: int) -> str:
        return self._lookup(self.processes, "process", handle)

    def message(self, handle: int) -> str:
        return self._lookup(self.messages, "message", handle)

    def semaphore(self, handle: int) -> str:
        return self._lookup(self.semaphores, "semaphore", handle)

    def state(self, handle: int) -> str:
        return self._lookup(self.states, "state", handle)

    @staticmethod
    def _lookup(table: NameTable, kind: str, handle: int) -> str:
        try:
            return table[handle]
        except (KeyError, IndexError):
            raise UnknownHandleError(f"unknown {kind} handle {handle}") from None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NameTables":
        tables: Dict[str, Any] = {key: _coerce_table(payload.get(key), key) for key in _TABLE_KEYS}
        return cls(begin_time=int(payload.get("begin_time") or 0), **tables)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "NameTables":
        """Load tables written by the engine, e.g.

        ``{"processes": ["init", "ping"], "messages": {"3": "Ack"}, "begin_time": 0}``
        """
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return cls.from_dict(payload)
