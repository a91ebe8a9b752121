"""
StreamWorld — Resource Probe

Measures host capacity (CPU cores, memory, network bandwidth) with psutil and
converts it into conservative operating limits for background automation.
The derived constraints are the only gate that keeps the automation engine
from saturating the host.
"""

from __future__ import annotations

import math
from typing import Any

import psutil
import structlog

from streamworld.config import ResourceConfig
from streamworld.core.types import ResourceConstraints, ResourceReading

logger = structlog.get_logger("streamworld.core.resources")

_BYTES_PER_MB = 1024 * 1024


class ResourceProbe:
    """
    Reads host capacity.

    Network interface speeds are reported by psutil in Mbit/s and converted
    to MB/s; interfaces that report 0 (unknown) are ignored. Disk throughput
    capacity is not observable, so the configured default is used.
    """

    def __init__(self, config: ResourceConfig | None = None) -> None:
        self._config = config or ResourceConfig()
        self._logger = logger.bind(component="resource_probe")
        self._latest: ResourceReading | None = None

    async def measure(self) -> ResourceReading:
        """Measure current host capacity."""
        reading = ResourceReading(
            cpu_cores=psutil.cpu_count(logical=True) or 1,
            total_memory_mb=psutil.virtual_memory().total / _BYTES_PER_MB,
            network_bandwidth_mbps=self._measure_bandwidth(),
            disk_io_kbps=self._config.default_disk_io_kbps,
        )
        self._latest = reading
        self._logger.debug(
            "resources_measured",
            cpu_cores=reading.cpu_cores,
            total_memory_mb=round(reading.total_memory_mb, 1),
            network_bandwidth_mbps=reading.network_bandwidth_mbps,
        )
        return reading

    def _measure_bandwidth(self) -> float:
        speeds = [
            stats.speed
            for stats in psutil.net_if_stats().values()
            if stats.isup and stats.speed > 0
        ]
        if not speeds:
            return self._config.default_bandwidth_mbps
        return max(speeds) / 8.0

    def derive_constraints(self, reading: ResourceReading) -> ResourceConstraints:
        """Apply the configured capacity fractions to a reading."""
        cfg = self._config
        return ResourceConstraints(
            max_concurrent_tasks=max(1, math.floor(reading.cpu_cores * cfg.cpu_fraction)),
            memory_limit_mb=math.floor(reading.total_memory_mb * cfg.memory_fraction),
            network_rate_limit_kbps=reading.network_bandwidth_mbps * 1024 * cfg.bandwidth_fraction,
            disk_io_limit_kbps=reading.disk_io_kbps * cfg.disk_io_fraction,
        )

    def snapshot(self) -> dict[str, Any]:
        """Current host utilisation."""
        mem = psutil.virtual_memory()
        return {
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory_percent": mem.percent,
            "memory_available_mb": round(mem.available / _BYTES_PER_MB, 1),
        }

    @property
    def latest(self) -> ResourceReading | None:
        return self._latest
