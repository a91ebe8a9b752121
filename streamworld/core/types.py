"""
StreamWorld — Core Type Definitions

World state and health, awareness scalars, resource readings and constraints,
and automation task descriptors.
"""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from streamworld.core.schedule import Schedule
from streamworld.primitives.common import SWBaseModel, utc_now

TaskHandler = Callable[[], Awaitable[None]]


# ─── World ────────────────────────────────────────────────────────────


class WorldHealth(str, enum.Enum):
    """Aggregate health of the world after (or during) a run."""

    STARTING = "starting"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


class ErrorRecord(SWBaseModel):
    component: str
    error: str
    timestamp: datetime = Field(default_factory=utc_now)
    level: Literal["error", "warning"] = "error"


class WorldState(SWBaseModel):
    """
    Lifecycle state owned by the World.

    `health` is HEALTHY iff no error was recorded during the run, DEGRADED iff
    at least one subsystem failed but the run completed, FAILING iff the run
    sequence itself raised. `warnings` never influence health.
    """

    initialized: bool = False
    # Insertion order is startup order
    running_services: list[str] = Field(default_factory=list)
    health: WorldHealth = WorldHealth.STARTING
    start_time: datetime | None = None
    errors: list[ErrorRecord] = Field(default_factory=list)
    warnings: list[ErrorRecord] = Field(default_factory=list)


# ─── Awareness ────────────────────────────────────────────────────────


class AwarenessState(SWBaseModel):
    self_awareness: float = Field(0.0, ge=0.0, le=1.0)
    environmental_awareness: float = Field(0.0, ge=0.0, le=1.0)
    network_awareness: float = Field(0.0, ge=0.0, le=1.0)
    temporal_awareness: float = Field(0.0, ge=0.0, le=1.0)
    automation_awareness: float = Field(0.0, ge=0.0, le=1.0)
    intelligence_quotient: float = 0.0

    model_config = {"validate_assignment": True}


# ─── Resources ────────────────────────────────────────────────────────


class ResourceReading(SWBaseModel):
    """Raw host capacity as measured by the resource probe."""

    cpu_cores: int = Field(1, ge=1)
    total_memory_mb: float = Field(0.0, ge=0.0)
    network_bandwidth_mbps: float = Field(0.0, ge=0.0)  # megabytes per second
    disk_io_kbps: float = Field(0.0, ge=0.0)


class ResourceConstraints(SWBaseModel):
    """Operating limits for background automation, derived from a reading."""

    max_concurrent_tasks: int = Field(1, ge=1)
    memory_limit_mb: int = Field(0, ge=0)
    network_rate_limit_kbps: float = Field(0.0, ge=0.0)
    disk_io_limit_kbps: float = Field(0.0, ge=0.0)

    model_config = {"frozen": True}


# ─── Automation ───────────────────────────────────────────────────────


@dataclass
class AutomationTask:
    """
    A named, schedule-triggered background action.

    A string schedule is parsed on construction, so an invalid expression
    raises ScheduleError before the task ever reaches the engine.
    """

    id: str
    schedule: Schedule | str
    handler: TaskHandler
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("AutomationTask requires a non-empty id")
        if isinstance(self.schedule, str):
            self.schedule = Schedule.parse(self.schedule)


class TaskStats(SWBaseModel):
    run_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    last_run: datetime | None = None
    last_error: str | None = None


# ─── Intelligence ─────────────────────────────────────────────────────


class NeuralPathways(SWBaseModel):
    pattern_recognition: bool = True
    anomaly_detection: bool = True
    predictive_analysis: bool = True


class PredictionAccuracy(SWBaseModel):
    overall: float = Field(0.0, ge=0.0, le=100.0)
    samples: int = 0


class Insight(SWBaseModel):
    source: str
    description: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    importance: float = Field(0.0, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)
