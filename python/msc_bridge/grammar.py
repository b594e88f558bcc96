"""Trace record grammars and their control-protocol renderings.

A record grammar is written as the record itself with ``{name:type}``
placeholders, for example::

    <taskDeleted nId="n{nId:dec}" time="{time:dec}" pName="p{pName:dec}" pId="{pId:hex}" />

Whitespace in a template matches any run of whitespace, including none.
Matching stops after the last placeholder; whatever follows it in the record
is not inspected.  Field types:

    dec   unsigned decimal
    int   signed decimal
    hex   hexadecimal, optional ``0x`` prefix
    text  one or more characters other than ``"``

Every grammar must capture ``nId`` (routing key) and ``time`` (nanoseconds).

The grammars are tried in order and the first full match wins.  The default
record kinds carry distinct tag names so they do not overlap, but a custom
grammar list can; keep the more specific grammar first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

Fields = Dict[str, Any]

_PLACEHOLDER = re.compile(r"\{(\w+):(\w+)\}")
_FIELD_TYPES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "dec": (r"\d+", int),
    "int": (r"[-+]?\d+", int),
    "hex": (r"(?:0[xX])?[0-9a-fA-F]+", lambda text: int(text, 16)),
    "text": (r'[^"]+', str),
}


class RenderContext(Protocol):
    def timestamp(self, raw: int) -> int: ...

    def process(self, handle: int) -> str: ...

    def message(self, handle: int) -> str: ...

    def semaphore(self, handle: int) -> str: ...

    def state(self, handle: int) -> str: ...


Renderer = Callable[[Fields, RenderContext], str]


def command(name: str, *fields: object) -> str:
    """Format one control command: ``name| f1| f2|\\n``."""
    return "| ".join([name, *(str(value) for value in fields)]) + "|\n"


def _literal(text: str) -> str:
    return r"\s*".join(re.escape(chunk) for chunk in re.split(r"\s+", text))


def compile_template(template: str) -> Tuple["re.Pattern[str]", Dict[str, Callable[[str], Any]]]:
    parts: List[str] = []
    converters: Dict[str, Callable[[str], Any]] = {}
    pos = 0
    for match in _PLACEHOLDER.finditer(template):
        name, kind = match.groups()
        if kind not in _FIELD_TYPES:
            raise ValueError(f"unknown field type {kind!r} in {template!r}")
        if name in converters:
            raise ValueError(f"duplicate field {name!r} in {template!r}")
        pattern, converter = _FIELD_TYPES[kind]
        parts.append(_literal(template[pos:match.start()]))
        parts.append(f"(?P<{name}>{pattern})")
        converters[name] = converter
        pos = match.end()
    if not converters:
        raise ValueError(f"template without fields: {template!r}")
    return re.compile("".join(parts)), converters


@dataclass(frozen=True)
class Grammar:
    kind: str
    pattern: "re.Pattern[str]"
    converters: Mapping[str, Callable[[str], Any]]
    render: Renderer

    @classmethod
    def from_template(cls, kind: str, template: str, render: Renderer) -> "Grammar":
        pattern, converters = compile_template(template)
        for required in ("nId", "time"):
            if required not in converters:
                raise ValueError(f"grammar {kind!r} does not capture {required!r}")
        return cls(kind, pattern, converters, render)

    def parse(self, line: str) -> Optional[Fields]:
        match = self.pattern.match(line)
        if match is None:
            return None
        return {name: self.converters[name](text) for name, text in match.groupdict().items()}


def _record(kind: str, attributes: str) -> str:
    return f'<{kind} nId="n{{nId:dec}}" time="{{time:dec}}" {attributes} />'


def _task_created(f: Fields, ctx: RenderContext) -> str:
    return command(
        "taskCreated",
        f"-t{ctx.timestamp(f['time'])}",
        f"-c{f['creatorId']}",
        f"-n{ctx.process(f['pName'])}",
        f"-N{ctx.process(f['creatorName'])}",
        f["pId"],
    )


def _task_deleted(f: Fields, ctx: RenderContext) -> str:
    return command("taskDeleted", f"-t{ctx.timestamp(f['time'])}", f"-n{ctx.process(f['pName'])}", f["pId"])


def _message(kind: str) -> Renderer:
    def render(f: Fields, ctx: RenderContext) -> str:
        return command(
            kind,
            f"-t{ctx.timestamp(f['time'])}",
            f"-n{ctx.process(f['pName'])}",
            f"-i{f['mId']}",
            f["pId"],
            f["sigNum"],
            ctx.message(f["msgName"]),
        )

    return render


def _semaphore_created(f: Fields, ctx: RenderContext) -> str:
    return command(
        "semaphoreCreated",
        f"-t{ctx.timestamp(f['time'])}",
        f"-s{ctx.semaphore(f['semName'])}",
        f"-a{f['stillAvailable']}",
        f["pId"],
    )


def _take_attempt(f: Fields, ctx: RenderContext) -> str:
    return command(
        "takeAttempt",
        f"-t{ctx.timestamp(f['time'])}",
        f"-n{ctx.process(f['pName'])}",
        f"-s{ctx.semaphore(f['semName'])}",
        f"-T{f['timeout']}",
        f["pId"],
        f["semId"],
    )


def _take_succeeded(f: Fields, ctx: RenderContext) -> str:
    return command(
        "takeSucceeded",
        f"-t{ctx.timestamp(f['time'])}",
        f"-n{ctx.process(f['pName'])}",
        f"-s{ctx.semaphore(f['semName'])}",
        f"-a{f['stillAvailable']}",
        f["pId"],
        f["semId"],
    )


def _semaphore_op(kind: str) -> Renderer:
    def render(f: Fields, ctx: RenderContext) -> str:
        return command(
            kind,
            f"-t{ctx.timestamp(f['time'])}",
            f"-n{ctx.process(f['pName'])}",
            f"-s{ctx.semaphore(f['semName'])}",
            f["pId"],
            f["semId"],
        )

    return render


def _timer_started(f: Fields, ctx: RenderContext) -> str:
    return command(
        "timerStarted",
        f"-t{ctx.timestamp(f['time'])}",
        f"-n{ctx.process(f['pName'])}",
        f"-T{ctx.message(f['timerName'])}",
        f["pId"],
        f["tId"],
        f["timeLeft"],
    )


def _timer_op(kind: str) -> Renderer:
    def render(f: Fields, ctx: RenderContext) -> str:
        return command(
            kind,
            f"-t{ctx.timestamp(f['time'])}",
            f"-n{ctx.process(f['pName'])}",
            f"-T{ctx.message(f['timerName'])}",
            f["pId"],
            f["tId"],
        )

    return render


def _task_changed_state(f: Fields, ctx: RenderContext) -> str:
    return command(
        "taskChangedState",
        f"-t{ctx.timestamp(f['time'])}",
        f"-n{ctx.process(f['pName'])}",
        f["pId"],
        ctx.state(f["stateName"]),
    )


def _information(f: Fields, ctx: RenderContext) -> str:
    return command(
        "information",
        f"-t{ctx.timestamp(f['time'])}",
        f"-n{ctx.process(f['pName'])}",
        f["pId"],
        f["message"],
    )


_MESSAGE_FIELDS = 'pName="p{pName:dec}" mId="{mId:hex}" pId="{pId:hex}" sigNum="{sigNum:dec}" msgName="m{msgName:dec}"'
_SEMAPHORE_FIELDS = 'pName="p{pName:dec}" semName="x{semName:dec}" pId="{pId:hex}" semId="{semId:hex}"'
_TIMER_FIELDS = 'pName="p{pName:dec}" timerName="m{timerName:dec}" pId="{pId:hex}" tId="{tId:hex}"'

# Order matters: the first grammar that matches a record wins.
DEFAULT_GRAMMARS: Tuple[Grammar, ...] = (
    Grammar.from_template(
        "taskCreated",
        _record(
            "taskCreated",
            'creatorId="{creatorId:hex}" pName="p{pName:dec}" creatorName="p{creatorName:dec}" pId="{pId:hex}"',
        ),
        _task_created,
    ),
    Grammar.from_template(
        "taskDeleted",
        _record("taskDeleted", 'pName="p{pName:dec}" pId="{pId:hex}"'),
        _task_deleted,
    ),
    Grammar.from_template("messageSent", _record("messageSent", _MESSAGE_FIELDS), _message("messageSent")),
    Grammar.from_template("messageReceived", _record("messageReceived", _MESSAGE_FIELDS), _message("messageReceived")),
    Grammar.from_template("messageSaved", _record("messageSaved", _MESSAGE_FIELDS), _message("messageSaved")),
    Grammar.from_template(
        "semaphoreCreated",
        _record("semaphoreCreated", 'semName="x{semName:dec}" stillAvailable="{stillAvailable:int}" pId="{pId:hex}"'),
        _semaphore_created,
    ),
    Grammar.from_template(
        "takeAttempt",
        _record(
            "takeAttempt",
            'pName="p{pName:dec}" semName="x{semName:dec}" timeout="{timeout:int}" pId="{pId:hex}" semId="{semId:hex}"',
        ),
        _take_attempt,
    ),
    Grammar.from_template(
        "takeSucceeded",
        _record(
            "takeSucceeded",
            'pName="p{pName:dec}" semName="x{semName:dec}" stillAvailable="{stillAvailable:int}" '
            'pId="{pId:hex}" semId="{semId:hex}"',
        ),
        _take_succeeded,
    ),
    Grammar.from_template("takeTimedOut", _record("takeTimedOut", _SEMAPHORE_FIELDS), _semaphore_op("takeTimedOut")),
    Grammar.from_template("giveSem", _record("giveSem", _SEMAPHORE_FIELDS), _semaphore_op("giveSem")),
    Grammar.from_template(
        "timerStarted",
        _record("timerStarted", _TIMER_FIELDS + ' timeLeft="{timeLeft:int}"'),
        _timer_started,
    ),
    Grammar.from_template("timerCancelled", _record("timerCancelled", _TIMER_FIELDS), _timer_op("timerCancelled")),
    Grammar.from_template("timerTimedOut", _record("timerTimedOut", _TIMER_FIELDS), _timer_op("timerTimedOut")),
    Grammar.from_template(
        "taskChangedState",
        _record("taskChangedState", 'pName="p{pName:dec}" pId="{pId:hex}" stateName="s{stateName:dec}"'),
        _task_changed_state,
    ),
    Grammar.from_template(
        "information",
        _record("information", 'pName="p{pName:dec}" pId="{pId:hex}" message="{message:text}"'),
        _information,
    ),
)
