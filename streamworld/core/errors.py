"""
StreamWorld — Core Errors

Exceptions raised by the orchestrator core. Subsystem failures during boot are
converted to state by the World and never cross the orchestrator boundary;
these types cover misuse and the timeout wrapper around initializers.
"""

from __future__ import annotations


class StreamWorldError(Exception):
    """Base class for all StreamWorld core errors."""


class ScheduleError(StreamWorldError, ValueError):
    """A schedule expression could not be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid schedule {expression!r}: {reason}")


class SubsystemTimeoutError(StreamWorldError, TimeoutError):
    """A subsystem initializer did not finish within its timeout."""

    def __init__(self, component: str, timeout_s: float) -> None:
        self.component = component
        self.timeout_s = timeout_s
        super().__init__(f"{component} initialization timed out after {timeout_s:.1f}s")


class AutomationError(StreamWorldError):
    """Invalid use of the automation engine."""
