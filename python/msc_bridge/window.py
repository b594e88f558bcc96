"""Windowing collaborator.

The viewer that hosts the simulation view exposes three entry points: create
the root window, render it, and react to a resize.  The tracer core never
exchanges data with it; :class:`HeadlessWindow` stands in when no display is
attached (batch replays, tests).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from .errors import TracerError


@dataclass
class WindowGeometry:
    width: int = 800
    height: int = 600
    x: int = 0
    y: int = 0


class WindowHost(Protocol):
    def create(self) -> None: ...

    def display(self) -> None: ...

    def reshape(self, width: int, height: int) -> None: ...


class HeadlessWindow:
    """Keeps the geometry bookkeeping of a root window without drawing."""

    def __init__(self, geometry: Optional[WindowGeometry] = None, *, assigned_id: int = 1) -> None:
        self.geometry = geometry or WindowGeometry()
        self.assigned_id = assigned_id
        self.window_id: Optional[int] = None
        self.viewport: Tuple[int, int, int, int] = (0, 0, 0, 0)
        self.frames = 0

    def create(self) -> None:
        """Open the root window; a second call keeps the existing one."""
        if self.window_id is not None:
            return
        self.window_id = self.assigned_id
        self.viewport = (0, 0, self.geometry.width, self.geometry.height)

    def display(self) -> None:
        if self.window_id is None:
            raise TracerError("window not created")
        self.frames += 1

    def reshape(self, width: int, height: int) -> None:
        # a minimised window reports zero; keep the viewport non-degenerate
        width = max(1, width)
        height = max(1, height)
        self.geometry.width = width
        self.geometry.height = height
        self.viewport = (0, 0, width, height)
