"""
Tests for the AutomationEngine.

Covers:
  - Registration, replacement and schedule validation
  - Scheduled and triggered execution through the concurrency gate
  - Overlap skipping, handler errors and timeouts
  - Graceful stop: no handler runs after stop() returns
  - Built-in monitoring tasks
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from streamworld.config import AutomationOptions
from streamworld.core.automation import AutomationEngine
from streamworld.core.errors import AutomationError, ScheduleError
from streamworld.core.schedule import Schedule
from streamworld.core.types import AutomationTask, ResourceConstraints

DEFAULT_TASK_IDS = {
    "system-health-monitor",
    "network-gas-monitor",
    "payment-stream-monitor",
    "ipfs-content-pin",
}


def _make_engine(
    slots: int = 2,
    register_defaults: bool = False,
    **options,
) -> AutomationEngine:
    return AutomationEngine(
        constraints=ResourceConstraints(max_concurrent_tasks=slots, memory_limit_mb=512),
        options=AutomationOptions(**options),
        register_defaults=register_defaults,
        # Pin the wall clock to a period boundary so cron tasks never fire mid-test
        clock=lambda: 0.0,
    )


class _Blocker:
    """Async handler that blocks until released and tracks concurrency."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1


class TestRegistration:
    def test_default_tasks_registered(self):
        engine = _make_engine(register_defaults=True)
        assert set(engine.tasks) == DEFAULT_TASK_IDS
        assert engine.tasks["network-gas-monitor"].schedule.period_s == 300.0
        assert engine.tasks["ipfs-content-pin"].schedule.period_s == 7200.0

    def test_defaults_can_be_skipped(self):
        assert _make_engine().tasks == {}

    def test_invalid_schedule_never_reaches_engine(self):
        engine = _make_engine()
        with pytest.raises(ScheduleError):
            engine.register_task(AutomationTask(id="bad", schedule="*/7 * * * *", handler=AsyncMock()))
        assert "bad" not in engine.tasks

    def test_reregister_replaces(self):
        engine = _make_engine()
        first, second = AsyncMock(), AsyncMock()
        engine.register_task(AutomationTask(id="x", schedule="*/5 * * * *", handler=first))
        engine.register_task(AutomationTask(id="x", schedule="@hourly", handler=second))
        assert engine.tasks["x"].handler is second
        assert engine.tasks["x"].schedule.period_s == 3600.0

    def test_unregister_unknown_is_noop(self):
        engine = _make_engine()
        engine.unregister_task("missing")
        assert engine.tasks == {}


class TestConfigure:
    def test_partial_dict_merges(self):
        engine = _make_engine(task_timeout_s=5.0)
        engine.configure({"resource_priority": "high"})
        assert engine.options.resource_priority == "high"
        assert engine.options.task_timeout_s == 5.0

    def test_model_merges_only_set_fields(self):
        engine = _make_engine(event_triggers_enabled=False)
        engine.configure(AutomationOptions(notifications_enabled=True))
        assert engine.options.notifications_enabled is True
        assert engine.options.event_triggers_enabled is False

    def test_unknown_key_rejected(self):
        engine = _make_engine()
        with pytest.raises(ValidationError):
            engine.configure({"turbo": True})

    def test_invalid_priority_rejected(self):
        engine = _make_engine()
        with pytest.raises(ValidationError):
            engine.configure({"resource_priority": "urgent"})


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_gate_sized_from_constraints(self):
        engine = _make_engine(slots=4)
        await engine.initialize()
        assert engine.stats["slots"] == 4

    @pytest.mark.asyncio
    async def test_low_priority_halves_slots(self):
        engine = _make_engine(slots=4, resource_priority="low")
        await engine.initialize()
        assert engine.stats["slots"] == 2

    @pytest.mark.asyncio
    async def test_low_priority_keeps_one_slot(self):
        engine = _make_engine(slots=1, resource_priority="low")
        await engine.initialize()
        assert engine.stats["slots"] == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        engine = _make_engine(register_defaults=True)
        await engine.start()
        assert engine.is_running
        assert all(t["armed"] for t in engine.stats["tasks"].values())

        await engine.stop()
        assert not engine.is_running
        assert not any(t["armed"] for t in engine.stats["tasks"].values())

    @pytest.mark.asyncio
    async def test_schedule_disabled_arms_nothing(self):
        engine = _make_engine(register_defaults=True, schedule_enabled=False)
        await engine.start()
        assert not any(t["armed"] for t in engine.stats["tasks"].values())
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running_is_noop(self):
        engine = _make_engine()
        await engine.stop()
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_register_while_running_arms_immediately(self):
        engine = _make_engine()
        await engine.start()
        engine.register_task(AutomationTask(id="late", schedule="@hourly", handler=AsyncMock()))
        assert engine.stats["tasks"]["late"]["armed"] is True
        await engine.stop()


class TestScheduledExecution:
    @pytest.mark.asyncio
    async def test_interval_task_fires(self):
        engine = _make_engine()
        handler = AsyncMock()
        engine.register_task(AutomationTask(id="tick", schedule=Schedule.every(seconds=0.01), handler=handler))

        await engine.start()
        await asyncio.sleep(0.1)
        await engine.stop()

        assert handler.await_count >= 2
        assert engine.task_stats("tick").run_count == handler.await_count

    @pytest.mark.asyncio
    async def test_cron_task_does_not_fire_before_boundary(self):
        engine = _make_engine()
        handler = AsyncMock()
        engine.register_task(AutomationTask(id="x", schedule="*/5 * * * *", handler=handler))

        await engine.start()
        await engine.stop()
        await asyncio.sleep(0.05)

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_handler_runs_after_stop_returns(self):
        engine = _make_engine(slots=1)
        calls: list[float] = []

        async def handler() -> None:
            calls.append(asyncio.get_running_loop().time())
            await asyncio.sleep(0.005)

        engine.register_task(AutomationTask(id="fast", schedule=Schedule.every(seconds=0.01), handler=handler))

        await engine.start()
        await asyncio.sleep(0.06)
        await engine.stop()
        count_at_stop = len(calls)

        await asyncio.sleep(0.06)
        assert len(calls) == count_at_stop
        assert engine.stats["in_flight"] == 0


    @pytest.mark.asyncio
    async def test_lagging_wall_clock_fires_each_boundary_once(self):
        loop = asyncio.get_running_loop()
        origin = loop.time()
        handler = AsyncMock()
        engine = AutomationEngine(
            constraints=ResourceConstraints(max_concurrent_tasks=2),
            options=AutomationOptions(),
            register_defaults=False,
            # Wall clock running 2% slow against the sleep timer
            clock=lambda: (loop.time() - origin) * 0.98,
        )
        engine.register_task(AutomationTask(
            id="aligned",
            schedule=Schedule(period_s=0.2, aligned=True, expression="aligned 0.2s"),
            handler=handler,
        ))

        await engine.start()
        await asyncio.sleep(1.05)
        await engine.stop()

        # Five boundaries (0.2 .. 1.0 wall seconds) fall inside the window
        assert 3 <= handler.await_count <= 6
        assert engine.task_stats("aligned").skipped_count == 0


class TestTrigger:
    @pytest.mark.asyncio
    async def test_trigger_runs_handler(self):
        engine = _make_engine()
        handler = AsyncMock()
        engine.register_task(AutomationTask(id="x", schedule="@daily", handler=handler))
        await engine.start()

        execution = engine.trigger("x")
        assert execution is not None
        await execution

        handler.assert_awaited_once()
        stats = engine.task_stats("x")
        assert stats.run_count == 1
        assert stats.last_run is not None
        await engine.stop()

    @pytest.mark.asyncio
    async def test_trigger_requires_running_engine(self):
        engine = _make_engine()
        engine.register_task(AutomationTask(id="x", schedule="@daily", handler=AsyncMock()))
        with pytest.raises(AutomationError):
            engine.trigger("x")

    @pytest.mark.asyncio
    async def test_trigger_unknown_task(self):
        engine = _make_engine()
        await engine.start()
        with pytest.raises(AutomationError):
            engine.trigger("missing")
        await engine.stop()

    @pytest.mark.asyncio
    async def test_trigger_disabled(self):
        engine = _make_engine(event_triggers_enabled=False)
        engine.register_task(AutomationTask(id="x", schedule="@daily", handler=AsyncMock()))
        await engine.start()
        with pytest.raises(AutomationError):
            engine.trigger("x")
        await engine.stop()

    @pytest.mark.asyncio
    async def test_overlapping_execution_skipped(self):
        engine = _make_engine()
        blocker = _Blocker()
        engine.register_task(AutomationTask(id="slow", schedule="@daily", handler=blocker))
        await engine.start()

        first = engine.trigger("slow")
        await asyncio.sleep(0)
        assert engine.trigger("slow") is None
        assert engine.task_stats("slow").skipped_count == 1

        blocker.release.set()
        await first
        assert blocker.calls == 1
        await engine.stop()


class TestConcurrencyGate:
    @pytest.mark.asyncio
    async def test_at_most_slots_handlers_run(self):
        engine = _make_engine(slots=2)
        blocker = _Blocker()
        for i in range(4):
            engine.register_task(AutomationTask(id=f"t{i}", schedule="@daily", handler=blocker))
        await engine.start()

        executions = [engine.trigger(f"t{i}") for i in range(4)]
        await asyncio.sleep(0.02)
        assert blocker.active == 2

        blocker.release.set()
        await asyncio.gather(*executions)
        assert blocker.peak == 2
        assert blocker.calls == 4
        await engine.stop()

    @pytest.mark.asyncio
    async def test_queued_executions_dropped_on_stop(self):
        engine = _make_engine(slots=1)
        blocker = _Blocker()
        queued = AsyncMock()
        engine.register_task(AutomationTask(id="running", schedule="@daily", handler=blocker))
        engine.register_task(AutomationTask(id="queued", schedule="@daily", handler=queued))
        await engine.start()

        engine.trigger("running")
        engine.trigger("queued")
        await asyncio.sleep(0.01)

        stopping = asyncio.create_task(engine.stop())
        await asyncio.sleep(0.01)
        blocker.release.set()
        await stopping

        assert blocker.calls == 1
        queued.assert_not_awaited()


class TestExecutionFailures:
    @pytest.mark.asyncio
    async def test_handler_error_counted_engine_keeps_running(self):
        engine = _make_engine()
        engine.register_task(AutomationTask(
            id="boom", schedule="@daily", handler=AsyncMock(side_effect=RuntimeError("rpc down")),
        ))
        await engine.start()

        await engine.trigger("boom")

        stats = engine.task_stats("boom")
        assert stats.error_count == 1
        assert stats.run_count == 0
        assert stats.last_error == "rpc down"
        assert engine.is_running
        await engine.stop()

    @pytest.mark.asyncio
    async def test_handler_timeout_counted(self):
        engine = _make_engine(task_timeout_s=0.01)

        async def hang() -> None:
            await asyncio.sleep(10)

        engine.register_task(AutomationTask(id="hang", schedule="@daily", handler=hang))
        await engine.start()

        await engine.trigger("hang")

        stats = engine.task_stats("hang")
        assert stats.error_count == 1
        assert stats.last_error == "TimeoutError"
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight(self):
        engine = _make_engine()
        finished = asyncio.Event()

        async def work() -> None:
            await asyncio.sleep(0.02)
            finished.set()

        engine.register_task(AutomationTask(id="work", schedule="@daily", handler=work))
        await engine.start()
        engine.trigger("work")
        await asyncio.sleep(0)

        await engine.stop()
        assert finished.is_set()

    @pytest.mark.asyncio
    async def test_stop_cancels_after_timeout(self):
        engine = _make_engine(stop_timeout_s=0.02, task_timeout_s=None)
        blocker = _Blocker()
        engine.register_task(AutomationTask(id="stuck", schedule="@daily", handler=blocker))
        await engine.start()
        engine.trigger("stuck")
        await asyncio.sleep(0.01)

        await engine.stop()
        assert blocker.active == 0
        assert engine.stats["in_flight"] == 0


class TestDefaultTasks:
    @pytest.mark.asyncio
    async def test_gas_monitor_reports_to_intelligence(self):
        engine = _make_engine(register_defaults=True)
        intelligence = MagicMock()
        engine.register_intelligence(intelligence)
        await engine.start()

        await engine.trigger("network-gas-monitor")

        intelligence.observe.assert_called_once_with(
            "network-metrics", {"task": "network-gas-monitor"},
        )
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stream_monitor_reports_transactions(self):
        engine = _make_engine(register_defaults=True)
        intelligence = MagicMock()
        engine.register_intelligence(intelligence)
        await engine.start()

        await engine.trigger("payment-stream-monitor")

        assert intelligence.observe.call_args.args[0] == "transaction-patterns"
        await engine.stop()

    @pytest.mark.asyncio
    async def test_health_monitor_reads_probe(self):
        probe = MagicMock()
        probe.snapshot.return_value = {"cpu_percent": 1.0}
        engine = AutomationEngine(
            constraints=ResourceConstraints(max_concurrent_tasks=1),
            probe=probe,
            clock=lambda: 0.0,
        )
        await engine.start()

        await engine.trigger("system-health-monitor")

        probe.snapshot.assert_called_once()
        assert engine.task_stats("system-health-monitor").run_count == 1
        await engine.stop()
