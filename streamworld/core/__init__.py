"""
StreamWorld — Core

The lifecycle orchestrator (World), the awareness layer it starts, and the
resource-constrained automation engine the awareness layer owns.
"""

from streamworld.core.automation import AutomationEngine
from streamworld.core.awareness import AwarenessCore
from streamworld.core.errors import (
    AutomationError,
    ScheduleError,
    StreamWorldError,
    SubsystemTimeoutError,
)
from streamworld.core.intelligence import DigitalIntelligence
from streamworld.core.resources import ResourceProbe
from streamworld.core.schedule import Schedule
from streamworld.core.types import (
    AutomationTask,
    AwarenessState,
    ErrorRecord,
    ResourceConstraints,
    ResourceReading,
    TaskStats,
    WorldHealth,
    WorldState,
)
from streamworld.core.world import World

__all__ = [
    "AutomationEngine",
    "AutomationError",
    "AutomationTask",
    "AwarenessCore",
    "AwarenessState",
    "DigitalIntelligence",
    "ErrorRecord",
    "ResourceConstraints",
    "ResourceProbe",
    "ResourceReading",
    "Schedule",
    "ScheduleError",
    "StreamWorldError",
    "SubsystemTimeoutError",
    "TaskStats",
    "World",
    "WorldHealth",
    "WorldState",
]
