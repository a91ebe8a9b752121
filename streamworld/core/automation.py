"""
StreamWorld — Automation Engine

Runs named background tasks on their schedules, bounded by the resource
constraints derived from the host.

Usage:
    engine = AutomationEngine(constraints=probe.derive_constraints(reading))
    engine.register_task(AutomationTask(
        id="gas-report",
        schedule="*/5 * * * *",
        handler=report_gas,            # async () -> None
    ))
    await engine.initialize()
    await engine.start()
    ...
    await engine.stop()

Design notes:
- Each task has its own scheduler loop; a slow task does not delay others.
- At most `max_concurrent_tasks` handlers execute at once. Executions beyond
  that wait for a slot in FIFO order (asyncio.Semaphore wakes waiters in
  the order they arrived).
- A task whose previous execution is still queued or running skips the
  tick instead of piling up behind itself.
- Handler exceptions are caught, counted and logged; the engine keeps running.
- stop() cancels the scheduler loops, then waits for in-flight executions.
  Executions still queued for a slot never call their handler once stop()
  has begun, so no handler runs after stop() returns.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from streamworld.config import AutomationOptions
from streamworld.core.errors import AutomationError
from streamworld.core.schedule import Schedule
from streamworld.core.types import AutomationTask, ResourceConstraints, TaskStats
from streamworld.primitives.common import new_id, utc_now

if TYPE_CHECKING:
    from streamworld.core.intelligence import DigitalIntelligence
    from streamworld.core.resources import ResourceProbe

logger = structlog.get_logger("streamworld.core.automation")


class AutomationEngine:
    """
    Schedule-driven task runner.

    Parameters
    ----------
    constraints:
        Operating limits; `max_concurrent_tasks` sizes the execution gate.
    network_conditions, temporal_constraints:
        Context from the awareness phases, exposed to task handlers.
    options:
        Initial options; later changes go through configure().
    register_defaults:
        Register the built-in monitoring tasks on construction.
    probe:
        Optional resource probe consulted by the health-monitor task.
    clock:
        Wall-clock source (epoch seconds) used to align cron schedules.
    """

    def __init__(
        self,
        constraints: ResourceConstraints,
        network_conditions: dict[str, Any] | None = None,
        temporal_constraints: dict[str, Any] | None = None,
        options: AutomationOptions | None = None,
        register_defaults: bool = True,
        probe: ResourceProbe | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._constraints = constraints
        self.network_conditions = network_conditions or {}
        self.temporal_constraints = temporal_constraints or {}
        self._options = options or AutomationOptions()
        self._probe = probe
        self._clock = clock
        self._logger = logger.bind(component="automation_engine")

        self._tasks: dict[str, AutomationTask] = {}
        self._stats: dict[str, TaskStats] = {}
        # Scheduler loop per task id
        self._loops: dict[str, asyncio.Task[None]] = {}
        # Latest execution per task id (queued or running)
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._in_flight: set[asyncio.Task[None]] = set()

        self._gate: asyncio.Semaphore | None = None
        self._slots: int = 0
        self._running = False
        self._intelligence: DigitalIntelligence | None = None

        if register_defaults:
            self._register_default_tasks()

    # ─── Registration ────────────────────────────────────────────────

    def register_task(self, task: AutomationTask) -> None:
        """
        Register a task. Re-registering an id replaces the previous task; if
        the engine is running the replacement is armed immediately.
        """
        replaced = task.id in self._tasks
        if replaced:
            self._cancel_loop(task.id)

        self._tasks[task.id] = task
        self._stats.setdefault(task.id, TaskStats())

        if self._running and self._options.schedule_enabled:
            self._arm(task)

        self._logger.debug(
            "automation_task_registered",
            task_id=task.id,
            schedule=_schedule_of(task).expression,
            replaced=replaced,
        )

    def unregister_task(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is None:
            return
        self._cancel_loop(task_id)
        self._logger.info("automation_task_unregistered", task_id=task_id)

    def register_intelligence(self, module: DigitalIntelligence) -> None:
        """Attach a digital-intelligence module for task handlers to consult."""
        self._intelligence = module
        self._logger.info("intelligence_registered")

    def configure(self, options: AutomationOptions | dict[str, Any] | None) -> None:
        """
        Merge partial options into the current configuration. Tasks that are
        already armed keep running; the execution gate is sized once, in
        initialize().
        """
        if not options:
            return
        if isinstance(options, AutomationOptions):
            update = options.model_dump(exclude_unset=True)
        else:
            update = dict(options)
        self._options = AutomationOptions.model_validate(
            {**self._options.model_dump(), **update}
        )
        self._logger.info("automation_configured", **update)

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Size the execution gate from the constraints. Idempotent."""
        if self._gate is not None:
            return
        slots = self._constraints.max_concurrent_tasks
        if self._options.resource_priority == "low":
            slots = max(1, slots // 2)
        self._slots = slots
        self._gate = asyncio.Semaphore(slots)
        self._logger.info(
            "automation_engine_initialized",
            slots=slots,
            memory_limit_mb=self._constraints.memory_limit_mb,
            network_rate_limit_kbps=self._constraints.network_rate_limit_kbps,
        )

    async def start(self) -> None:
        """Arm every registered task against its schedule."""
        if self._running:
            return
        await self.initialize()
        self._running = True
        if self._options.schedule_enabled:
            for task in self._tasks.values():
                self._arm(task)
        self._logger.info(
            "automation_engine_started",
            task_count=len(self._tasks),
            scheduled=self._options.schedule_enabled,
        )

    async def stop(self) -> None:
        """Stop scheduling and wait for in-flight executions to finish."""
        if not self._running:
            return
        self._running = False

        loops = list(self._loops.values())
        self._loops.clear()
        for loop in loops:
            loop.cancel()
        for loop in loops:
            with contextlib.suppress(asyncio.CancelledError):
                await loop

        in_flight = set(self._in_flight)
        timed_out = 0
        if in_flight:
            _, still_running = await asyncio.wait(
                in_flight, timeout=self._options.stop_timeout_s
            )
            timed_out = len(still_running)
            for execution in still_running:
                execution.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        self._pending.clear()
        self._logger.info(
            "automation_engine_stopped",
            awaited=len(in_flight),
            cancelled=timed_out,
        )

    def trigger(self, task_id: str) -> asyncio.Task[None] | None:
        """
        Run a task now, outside its schedule, through the same execution
        gate. Returns None if the task's previous execution is still pending.
        """
        if not self._options.event_triggers_enabled:
            raise AutomationError("Event triggers are disabled")
        if not self._running:
            raise AutomationError("Automation engine is not running")
        task = self._tasks.get(task_id)
        if task is None:
            raise AutomationError(f"Unknown automation task: {task_id}")
        return self._dispatch(task, source="trigger")

    # ─── Internals ───────────────────────────────────────────────────

    def _arm(self, task: AutomationTask) -> None:
        existing = self._loops.get(task.id)
        if existing is not None and not existing.done():
            return
        self._loops[task.id] = asyncio.create_task(
            self._schedule_loop(task), name=f"automation:{task.id}"
        )

    def _cancel_loop(self, task_id: str) -> None:
        loop = self._loops.pop(task_id, None)
        if loop is not None and not loop.done():
            loop.cancel()

    async def _schedule_loop(self, task: AutomationTask) -> None:
        schedule = _schedule_of(task)
        fire_at: float | None = None
        while self._running:
            now = self._clock()
            fire_at = schedule.next_fire(now, after=fire_at)
            await asyncio.sleep(fire_at - now)
            if not self._running:
                return
            self._dispatch(task, source="schedule")

    def _dispatch(self, task: AutomationTask, source: str) -> asyncio.Task[None] | None:
        stats = self._stats[task.id]
        pending = self._pending.get(task.id)
        if pending is not None and not pending.done():
            stats.skipped_count += 1
            self._logger.debug("automation_task_overlap_skipped", task_id=task.id, source=source)
            return None

        execution = asyncio.create_task(
            self._execute(task, source), name=f"automation-run:{task.id}"
        )
        self._pending[task.id] = execution
        self._in_flight.add(execution)
        execution.add_done_callback(self._in_flight.discard)
        return execution

    async def _execute(self, task: AutomationTask, source: str) -> None:
        assert self._gate is not None
        async with self._gate:
            if not self._running:
                self._logger.debug("automation_task_dropped_on_stop", task_id=task.id)
                return

            stats = self._stats[task.id]
            execution_id = new_id()
            t0 = time.monotonic()
            try:
                if self._options.task_timeout_s is not None:
                    await asyncio.wait_for(task.handler(), timeout=self._options.task_timeout_s)
                else:
                    await task.handler()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                stats.error_count += 1
                stats.last_error = str(exc) or type(exc).__name__
                self._logger.warning(
                    "automation_task_error",
                    task_id=task.id,
                    execution_id=execution_id,
                    error=stats.last_error,
                )
                return
            finally:
                stats.last_run = utc_now()

            stats.run_count += 1
            self._logger.debug(
                "automation_task_completed",
                task_id=task.id,
                execution_id=execution_id,
                source=source,
                elapsed_ms=round((time.monotonic() - t0) * 1000.0, 2),
            )

    # ─── Default Tasks ───────────────────────────────────────────────

    def _register_default_tasks(self) -> None:
        self.register_task(AutomationTask(
            id="system-health-monitor",
            schedule="*/15 * * * *",
            handler=self._check_system_health,
        ))
        self.register_task(AutomationTask(
            id="network-gas-monitor",
            schedule="*/5 * * * *",
            handler=self._monitor_gas_prices,
        ))
        self.register_task(AutomationTask(
            id="payment-stream-monitor",
            schedule="*/10 * * * *",
            handler=self._monitor_active_streams,
        ))
        self.register_task(AutomationTask(
            id="ipfs-content-pin",
            schedule="0 */2 * * *",
            handler=self._pin_content,
        ))

    async def _check_system_health(self) -> None:
        snapshot = self._probe.snapshot() if self._probe is not None else {}
        self._logger.info("automated_health_check", **snapshot)

    async def _monitor_gas_prices(self) -> None:
        self._logger.info("automated_gas_monitor")
        self._report("network-metrics", {"task": "network-gas-monitor"})

    async def _monitor_active_streams(self) -> None:
        self._logger.info("automated_stream_monitor")
        self._report("transaction-patterns", {"task": "payment-stream-monitor"})

    async def _pin_content(self) -> None:
        self._logger.info("automated_content_pin")

    def _report(self, stream_id: str, data: dict[str, Any]) -> None:
        if self._intelligence is not None:
            self._intelligence.observe(stream_id, data)

    # ─── Accessors ───────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def constraints(self) -> ResourceConstraints:
        return self._constraints

    @property
    def options(self) -> AutomationOptions:
        return self._options

    @property
    def intelligence(self) -> DigitalIntelligence | None:
        return self._intelligence

    @property
    def tasks(self) -> dict[str, AutomationTask]:
        return dict(self._tasks)

    def task_stats(self, task_id: str) -> TaskStats | None:
        stats = self._stats.get(task_id)
        return stats.model_copy() if stats is not None else None

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "slots": self._slots,
            "in_flight": len(self._in_flight),
            "intelligence": self._intelligence is not None,
            "tasks": {
                task_id: {
                    "schedule": _schedule_of(task).expression,
                    "armed": task_id in self._loops and not self._loops[task_id].done(),
                    **self._stats[task_id].model_dump(mode="json"),
                }
                for task_id, task in self._tasks.items()
            },
        }


def _schedule_of(task: AutomationTask) -> Schedule:
    assert isinstance(task.schedule, Schedule)
    return task.schedule
