"""Translate simulation trace records into tracer control commands."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from .grammar import DEFAULT_GRAMMARS, Fields, Grammar
from .instance import TracerInstance, TracerStatus
from .names import NameTables

LOGGER = logging.getLogger(__name__)

DEFAULT_TIME_DIVISOR = 1_000_000


class EventTranslator:
    """Match a raw record against the ordered grammars and deliver the command.

    Timestamps are rebased on ``begin_time`` (records stamped before it clamp
    to zero) and scaled down by ``time_divisor`` with integer division.
    """

    def __init__(
        self,
        names: Optional[NameTables] = None,
        *,
        begin_time: Optional[int] = None,
        time_divisor: int = DEFAULT_TIME_DIVISOR,
        grammars: Sequence[Grammar] = DEFAULT_GRAMMARS,
    ) -> None:
        if time_divisor <= 0:
            raise ValueError("time_divisor must be positive")
        self.names = names or NameTables()
        self.begin_time = self.names.begin_time if begin_time is None else begin_time
        self.time_divisor = time_divisor
        self.grammars: Tuple[Grammar, ...] = tuple(grammars)

    # RenderContext
    def timestamp(self, raw: int) -> int:
        return max(0, raw - self.begin_time) // self.time_divisor

    def process(self, handle: int) -> str:
        return self.names.process(handle)

    def message(self, handle: int) -> str:
        return self.names.message(handle)

    def semaphore(self, handle: int) -> str:
        return self.names.semaphore(handle)

    def state(self, handle: int) -> str:
        return self.names.state(handle)

    def match(self, line: str) -> Optional[Tuple[Grammar, Fields]]:
        for grammar in self.grammars:
            fields = grammar.parse(line)
            if fields is not None:
                return grammar, fields
        return None

    def translate(self, line: str) -> Optional[Tuple[int, str]]:
        """Return ``(node_id, command)`` for a record, or ``None`` if nothing matches."""
        matched = self.match(line)
        if matched is None:
            return None
        grammar, fields = matched
        return fields["nId"], grammar.render(fields, self)

    def send(self, line: str, instances: Sequence[TracerInstance]) -> bool:
        """Deliver the command for ``line`` to its node's tracer.

        Unmatched lines, unknown nodes and tracers without a live connection
        are ignored.  A failed write demotes the tracer to OPENED right away.
        """
        matched = self.match(line)
        if matched is None:
            LOGGER.debug("dropping unrecognised trace record: %.120s", line.rstrip())
            return False
        grammar, fields = matched
        node_id = fields["nId"]
        if node_id >= len(instances):
            return False
        instance = instances[node_id]
        if instance.status is not TracerStatus.CONNECTED:
            return False
        data = grammar.render(fields, self).encode("utf-8")
        return instance.write(data)
