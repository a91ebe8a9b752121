"""
StreamWorld — World

The top-level lifecycle orchestrator. Sequences subsystem initialisation,
aggregates failures into a health state, and exposes run / shutdown /
get_state to the UI layer.

Boot order (strictly sequential; later stores may read earlier ones):
  system → ui → blockchain (auto_connect only) → user → content → streaming
  → core services → background tasks (wallet refresh, awareness)

Failure policy:
  - A subsystem initializer that raises or times out is recorded, health
    drops to DEGRADED, and the sequence continues.
  - An exception escaping the sequence itself sets FAILING; run() returns
    False and never re-raises.
  - shutdown() logs and re-raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from streamworld.config import StreamWorldConfig
from streamworld.core.errors import SubsystemTimeoutError
from streamworld.core.types import ErrorRecord, WorldHealth, WorldState
from streamworld.primitives.common import utc_now

if TYPE_CHECKING:
    from streamworld.core.awareness import AwarenessCore
    from streamworld.stores import Stores

logger = structlog.get_logger("streamworld.core.world")

AwarenessFactory = Callable[[], "AwarenessCore"]


class World:
    """
    Owns the WorldState. Constructed once by the composition root and
    passed to whatever needs it.
    """

    def __init__(
        self,
        stores: Stores,
        config: StreamWorldConfig | None = None,
        awareness_factory: AwarenessFactory | None = None,
    ) -> None:
        self._stores = stores
        self._config = config or StreamWorldConfig()
        self._awareness_factory = awareness_factory
        self._logger = logger.bind(component="world")

        self._state = WorldState()
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None
        self._awareness: AwarenessCore | None = None
        self._started_monotonic: float | None = None

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def run(self, auto_connect: bool | None = None) -> bool:
        """
        Initialise and run the world. Returns True if the sequence completed
        (even with degraded subsystems) and False if it failed outright.
        """
        if auto_connect is None:
            auto_connect = self._config.world.auto_connect

        async with self._lock:
            if self._state.initialized:
                self._logger.warning("world_already_running")
                return True

            try:
                self._logger.info("world_starting", auto_connect=auto_connect)
                # Each run starts clean; a previous failed run may have left partial progress
                self._state = WorldState(start_time=utc_now())
                self._started_monotonic = time.monotonic()

                await self._run_initializer("system", self._initialize_system_state)
                await self._run_initializer("ui", self._initialize_ui_state)
                if auto_connect:
                    await self._run_initializer("blockchain", self._initialize_blockchain_state)
                await self._run_initializer("user", self._initialize_user_state)
                await self._run_initializer("content", self._initialize_content_state)
                await self._run_initializer("streaming", self._initialize_streaming_state)

                self._register_core_services()
                await self._start_background_tasks()

                self._state.initialized = True
                self._state.health = (
                    WorldHealth.HEALTHY
                    if not self._state.errors
                    else WorldHealth.DEGRADED
                )

                self._logger.info(
                    "world_startup_complete",
                    startup_s=round(time.monotonic() - self._started_monotonic, 2),
                    health=self._state.health.value,
                    services=list(self._state.running_services),
                )
                return True

            except Exception as exc:
                self._state.health = WorldHealth.FAILING
                self._state.errors.append(ErrorRecord(
                    component="world",
                    error=str(exc) or type(exc).__name__,
                ))
                self._logger.error("world_start_failed", error=str(exc), exc_info=True)
                await self._cancel_wallet_refresh()
                await self._discard_awareness()
                return False

    async def shutdown(self) -> None:
        """
        Tear down streaming and the wallet connection, stop background work
        and reset the state to its pre-init defaults. Errors are re-raised.
        """
        async with self._lock:
            self._logger.info("world_shutting_down")
            timeout = self._config.world.shutdown_timeout_s

            try:
                await self._cancel_wallet_refresh()

                await asyncio.wait_for(self._stores.streaming.cleanup_streams(), timeout=timeout)

                if self._stores.wallet.is_connected:
                    await asyncio.wait_for(self._stores.wallet.disconnect_wallet(), timeout=timeout)

                await self._discard_awareness()

                self._stop_services()
                self._state = WorldState()
                self._started_monotonic = None
                self._logger.info("world_shutdown_complete")
            except Exception as exc:
                self._logger.error("world_shutdown_failed", error=str(exc), exc_info=True)
                raise

    def get_state(self) -> WorldState:
        """A deep copy of the current state; mutating it has no effect on the World."""
        return self._state.model_copy(deep=True)

    def record_warning(self, component: str, message: str) -> None:
        """Append a structured warning. Warnings never change health."""
        self._state.warnings.append(ErrorRecord(component=component, error=message, level="warning"))

    # ─── Subsystem Initializers ──────────────────────────────────────

    async def _run_initializer(self, component: str, setup: Callable[[], Awaitable[None]]) -> bool:
        timeout = self._config.world.init_timeout_s
        try:
            self._logger.info("subsystem_initializing", subsystem=component)
            await asyncio.wait_for(setup(), timeout=timeout)
        except TimeoutError:
            self._handle_init_error(component, SubsystemTimeoutError(component, timeout))
            return False
        except Exception as exc:
            self._handle_init_error(component, exc)
            return False

        self._state.running_services.append(component)
        return True

    async def _initialize_system_state(self) -> None:
        self._stores.config.set_initialized()
        await self._stores.meta.load_meta_analysis()

    async def _initialize_ui_state(self) -> None:
        dark_mode = self._stores.theme.get_dark_mode()
        self._stores.theme.apply_theme(dark_mode)

    async def _initialize_blockchain_state(self) -> None:
        await self._stores.wallet.connect_wallet()

    async def _initialize_user_state(self) -> None:
        # Profiles are keyed by wallet; without a connection there is nothing to load
        if self._stores.wallet.is_connected:
            await self._stores.user.load_profile()

    async def _initialize_content_state(self) -> None:
        await self._stores.content.load_featured_content()

    async def _initialize_streaming_state(self) -> None:
        await self._stores.streaming.initialize()

    def _register_core_services(self) -> None:
        self._state.running_services.append("core")

    async def _start_background_tasks(self) -> None:
        self._refresh_task = asyncio.create_task(
            self._wallet_refresh_loop(), name="world_wallet_refresh"
        )

        if self._awareness_factory is not None:
            await self._run_initializer("awareness", self._initialize_awareness)

    async def _initialize_awareness(self) -> None:
        assert self._awareness_factory is not None
        awareness = self._awareness_factory()
        awareness.set_warning_sink(self.record_warning)
        self._awareness = awareness
        await awareness.initialize()

    def _stop_services(self) -> None:
        self._state.running_services = []

    async def _discard_awareness(self) -> None:
        awareness, self._awareness = self._awareness, None
        if awareness is not None:
            await awareness.shutdown()

    def _handle_init_error(self, component: str, error: BaseException) -> None:
        if self._state.health != WorldHealth.FAILING:
            self._state.health = WorldHealth.DEGRADED
        message = str(error) or type(error).__name__
        self._state.errors.append(ErrorRecord(component=component, error=message))
        self._logger.error("subsystem_init_failed", subsystem=component, error=message)

    # ─── Background Tasks ────────────────────────────────────────────

    async def _wallet_refresh_loop(self) -> None:
        interval = self._config.world.wallet_refresh_interval_s
        wallet = self._stores.wallet
        while True:
            await asyncio.sleep(interval)
            if not wallet.is_connected:
                continue
            try:
                await wallet.refresh_balance()
            except Exception as exc:
                self._logger.warning("wallet_refresh_failed", error=str(exc))

    async def _cancel_wallet_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ─── Accessors ───────────────────────────────────────────────────

    @property
    def awareness(self) -> AwarenessCore | None:
        return self._awareness

    @property
    def uptime_s(self) -> float:
        if self._started_monotonic is None or not self._state.initialized:
            return 0.0
        return time.monotonic() - self._started_monotonic

    @property
    def background_tasks_active(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()
