"""
Tests for the ResourceProbe — host capacity and derived constraints.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from streamworld.config import ResourceConfig
from streamworld.core.resources import ResourceProbe
from streamworld.core.types import ResourceReading

_MB = 1024 * 1024


def _make_psutil(cores: int = 8, memory_mb: float = 16384.0, speeds: dict[str, tuple[bool, int]] | None = None) -> MagicMock:
    fake = MagicMock()
    fake.cpu_count.return_value = cores
    fake.virtual_memory.return_value = SimpleNamespace(
        total=memory_mb * _MB, percent=42.0, available=memory_mb * _MB / 2,
    )
    fake.cpu_percent.return_value = 12.5
    speeds = speeds if speeds is not None else {"lo": (True, 0), "eth0": (True, 1000)}
    fake.net_if_stats.return_value = {
        name: SimpleNamespace(isup=isup, speed=speed) for name, (isup, speed) in speeds.items()
    }
    return fake


class TestMeasure:
    @pytest.mark.asyncio
    async def test_reads_host_capacity(self):
        with patch("streamworld.core.resources.psutil", _make_psutil()):
            probe = ResourceProbe()
            reading = await probe.measure()

        assert reading.cpu_cores == 8
        assert reading.total_memory_mb == pytest.approx(16384.0)
        # 1000 Mbit/s -> 125 MB/s
        assert reading.network_bandwidth_mbps == pytest.approx(125.0)
        assert probe.latest == reading

    @pytest.mark.asyncio
    async def test_unknown_link_speed_uses_default(self):
        fake = _make_psutil(speeds={"lo": (True, 0), "wlan0": (True, 0), "eth1": (False, 10000)})
        with patch("streamworld.core.resources.psutil", fake):
            reading = await ResourceProbe(ResourceConfig(default_bandwidth_mbps=3.0)).measure()
        assert reading.network_bandwidth_mbps == 3.0

    @pytest.mark.asyncio
    async def test_missing_cpu_count_is_one(self):
        fake = _make_psutil()
        fake.cpu_count.return_value = None
        with patch("streamworld.core.resources.psutil", fake):
            reading = await ResourceProbe().measure()
        assert reading.cpu_cores == 1


class TestDeriveConstraints:
    def test_default_fractions(self):
        probe = ResourceProbe()
        constraints = probe.derive_constraints(ResourceReading(
            cpu_cores=8,
            total_memory_mb=1000.0,
            network_bandwidth_mbps=10.0,
            disk_io_kbps=1000.0,
        ))
        assert constraints.max_concurrent_tasks == 4
        assert constraints.memory_limit_mb == 700
        assert constraints.network_rate_limit_kbps == pytest.approx(5120.0)
        assert constraints.disk_io_limit_kbps == pytest.approx(300.0)

    def test_single_core_still_gets_one_slot(self):
        constraints = ResourceProbe().derive_constraints(ResourceReading(cpu_cores=1))
        assert constraints.max_concurrent_tasks == 1

    def test_odd_core_count_floors(self):
        constraints = ResourceProbe().derive_constraints(ResourceReading(cpu_cores=3))
        assert constraints.max_concurrent_tasks == 1

    def test_constraints_are_frozen(self):
        constraints = ResourceProbe().derive_constraints(ResourceReading(cpu_cores=4))
        with pytest.raises(Exception):
            constraints.max_concurrent_tasks = 99  # type: ignore[misc]


class TestSnapshot:
    def test_reports_utilisation(self):
        with patch("streamworld.core.resources.psutil", _make_psutil(memory_mb=2048.0)):
            snap = ResourceProbe().snapshot()
        assert snap == {
            "cpu_percent": 12.5,
            "memory_percent": 42.0,
            "memory_available_mb": 1024.0,
        }
