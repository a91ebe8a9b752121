"""
StreamWorld — Awareness Sensors

Default sensing collaborators for the awareness phases. Each returns None (or
an empty mapping) when it has nothing to report, which the awareness core
scores as partial awareness rather than an error.
"""

from __future__ import annotations

import platform
import time
from datetime import datetime, timezone
from typing import Any

import psutil
import structlog

logger = structlog.get_logger("streamworld.core.sensors")


class EnvironmentSensor:
    """Host platform and runtime facts."""

    def __init__(self) -> None:
        self._context: dict[str, Any] = {}

    async def collect_data(self) -> dict[str, Any] | None:
        self._context = {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "python": platform.python_version(),
            "cpu_count": psutil.cpu_count(logical=True),
            "boot_time": datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc).isoformat(),
        }
        return self._context

    def get_context(self) -> dict[str, Any]:
        return dict(self._context)


class NetworkObserver:
    """Observes local network interfaces."""

    def __init__(self) -> None:
        self._conditions: dict[str, Any] = {}

    async def observe(self) -> dict[str, Any] | None:
        interfaces = {
            name: {"speed_mbit": stats.speed, "mtu": stats.mtu}
            for name, stats in psutil.net_if_stats().items()
            if stats.isup
        }
        # Loopback alone means no usable network
        external = {name: info for name, info in interfaces.items() if not name.startswith("lo")}
        self._conditions = {
            "interfaces": interfaces,
            "online": bool(external),
        }
        logger.debug("network_observed", interfaces=len(interfaces), online=bool(external))
        return self._conditions if external else None

    def get_conditions(self) -> dict[str, Any]:
        return dict(self._conditions)

    def get_pattern_recognition(self) -> dict[str, Any]:
        interfaces = self._conditions.get("interfaces", {})
        speeds = [info["speed_mbit"] for info in interfaces.values() if info["speed_mbit"] > 0]
        return {
            "interface_count": len(interfaces),
            "peak_speed_mbit": max(speeds) if speeds else 0,
        }


class TemporalSync:
    """Relates wall-clock time to the monotonic clock."""

    def __init__(self) -> None:
        self._anchor_wall: float | None = None
        self._anchor_monotonic: float | None = None
        self._utc_offset_s: float = 0.0

    async def sync_time(self) -> dict[str, Any] | None:
        self._anchor_wall = time.time()
        self._anchor_monotonic = time.monotonic()
        offset = datetime.now().astimezone().utcoffset()
        self._utc_offset_s = offset.total_seconds() if offset is not None else 0.0
        return {
            "wall_clock": self._anchor_wall,
            "monotonic": self._anchor_monotonic,
            "utc_offset_s": self._utc_offset_s,
        }

    def drift_s(self) -> float:
        """Wall-clock drift relative to the monotonic clock since the last sync."""
        if self._anchor_wall is None or self._anchor_monotonic is None:
            return 0.0
        wall_elapsed = time.time() - self._anchor_wall
        mono_elapsed = time.monotonic() - self._anchor_monotonic
        return wall_elapsed - mono_elapsed

    def get_temporal_boundaries(self) -> dict[str, Any]:
        return {
            "synced": self._anchor_wall is not None,
            "utc_offset_s": self._utc_offset_s,
        }

    def get_temporal_layer(self) -> dict[str, Any]:
        return {
            "synced": self._anchor_wall is not None,
            "drift_s": self.drift_s(),
        }
