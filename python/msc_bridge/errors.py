"""Exception types shared by the msc_bridge modules."""

from __future__ import annotations


class TracerError(RuntimeError):
    """Raised when the tracer subsystem is driven outside its contract."""


class UnknownHandleError(TracerError, LookupError):
    """Raised when a symbolic handle has no entry in its name table."""
