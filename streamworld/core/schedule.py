"""
StreamWorld — Task Schedules

Typed schedule descriptors for automation tasks. A schedule is either a fixed
interval or one of a small, checked subset of five-field cron expressions.
Cron-derived schedules fire on UTC wall-clock boundaries; intervals fire
relative to when the task was armed.

Supported cron forms:
  * * * * *        every minute
  */N * * * *      every N minutes (N divides 60)
  M * * * *        minute M of every hour
  M */N * * *      minute M of every N-th hour (N divides 24)
  M H * * *        daily at H:M UTC
  @hourly, @daily, @every <n>s|m|h
"""

from __future__ import annotations

import re

from pydantic import Field

from streamworld.core.errors import ScheduleError
from streamworld.primitives.common import SWBaseModel

_MINUTE_S = 60.0
_HOUR_S = 3600.0
_DAY_S = 86400.0

_EVERY_RE = re.compile(r"^@every\s+(\d+(?:\.\d+)?)\s*([smh])$")
_UNIT_S = {"s": 1.0, "m": _MINUTE_S, "h": _HOUR_S}


class Schedule(SWBaseModel):
    """When an automation task fires."""

    period_s: float = Field(..., gt=0.0)
    # Offset from the epoch-aligned period boundary (aligned schedules only)
    offset_s: float = Field(0.0, ge=0.0)
    aligned: bool = False
    expression: str = ""

    model_config = {"frozen": True}

    @classmethod
    def every(cls, seconds: float = 0.0, minutes: float = 0.0, hours: float = 0.0) -> Schedule:
        period = seconds + minutes * _MINUTE_S + hours * _HOUR_S
        if period <= 0:
            raise ScheduleError(f"every({seconds}s, {minutes}m, {hours}h)", "interval must be positive")
        return cls(period_s=period, expression=f"@every {period:g}s")

    @classmethod
    def parse(cls, expression: str) -> Schedule:
        """Parse a cron-like expression. Raises ScheduleError on anything unsupported."""
        expr = " ".join(expression.split())
        if not expr:
            raise ScheduleError(expression, "empty expression")

        if expr.startswith("@"):
            return cls._parse_alias(expr)

        fields = expr.split(" ")
        if len(fields) != 5:
            raise ScheduleError(expression, f"expected 5 fields, got {len(fields)}")

        minute, hour, day, month, weekday = fields
        if (day, month, weekday) != ("*", "*", "*"):
            raise ScheduleError(expression, "day, month and weekday fields must be '*'")

        if minute == "*":
            if hour != "*":
                raise ScheduleError(expression, "'*' minute requires '*' hour")
            return cls(period_s=_MINUTE_S, aligned=True, expression=expr)

        if minute.startswith("*/"):
            if hour != "*":
                raise ScheduleError(expression, "minute step requires '*' hour")
            step = _step(expression, minute, 60)
            return cls(period_s=step * _MINUTE_S, aligned=True, expression=expr)

        at_minute = _int_field(expression, minute, 0, 59, "minute")

        if hour == "*":
            return cls(period_s=_HOUR_S, offset_s=at_minute * _MINUTE_S, aligned=True, expression=expr)

        if hour.startswith("*/"):
            step = _step(expression, hour, 24)
            return cls(
                period_s=step * _HOUR_S,
                offset_s=at_minute * _MINUTE_S,
                aligned=True,
                expression=expr,
            )

        at_hour = _int_field(expression, hour, 0, 23, "hour")
        return cls(
            period_s=_DAY_S,
            offset_s=at_hour * _HOUR_S + at_minute * _MINUTE_S,
            aligned=True,
            expression=expr,
        )

    @classmethod
    def _parse_alias(cls, expr: str) -> Schedule:
        if expr == "@hourly":
            return cls(period_s=_HOUR_S, aligned=True, expression=expr)
        if expr == "@daily":
            return cls(period_s=_DAY_S, aligned=True, expression=expr)

        match = _EVERY_RE.match(expr)
        if match is None:
            raise ScheduleError(expr, "unknown alias")
        period = float(match.group(1)) * _UNIT_S[match.group(2)]
        if period <= 0:
            raise ScheduleError(expr, "interval must be positive")
        return cls(period_s=period, expression=expr)

    def next_delay(self, now: float) -> float:
        """Seconds from `now` (epoch seconds) until the next firing."""
        if not self.aligned:
            return self.period_s
        return self.next_fire(now) - now

    def next_fire(self, now: float, after: float | None = None) -> float:
        """
        Epoch time of the next firing, strictly later than both `now` and
        `after` (the previous firing), so a wall clock that lags the sleep
        timer never yields the same boundary twice.
        """
        base = now if after is None else max(now, after)
        if not self.aligned:
            return base + self.period_s
        elapsed = (base - self.offset_s) % self.period_s
        return base + self.period_s - elapsed


def _step(expression: str, field: str, modulus: int) -> int:
    raw = field[2:]
    if not raw.isdigit():
        raise ScheduleError(expression, f"step {field!r} is not an integer")
    step = int(raw)
    if step <= 0 or modulus % step != 0:
        raise ScheduleError(expression, f"step {step} must divide {modulus}")
    return step


def _int_field(expression: str, field: str, lo: int, hi: int, name: str) -> int:
    if not field.isdigit():
        raise ScheduleError(expression, f"{name} field {field!r} is not supported")
    value = int(field)
    if not lo <= value <= hi:
        raise ScheduleError(expression, f"{name} {value} out of range {lo}-{hi}")
    return value
