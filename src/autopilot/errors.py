from __future__ import annotations


class AutopilotError(RuntimeError):
    """Base class for errors raised by the autopilot host."""
