"""
StreamWorld — Awareness Core

Layered self-initialisation. Six ordered phases each set one awareness
scalar:

  1. self-reflection        — resources, self-configuration, component map
  2. environmental sensing  — host platform
  3. network observation    — local interfaces
  4. temporal sync          — wall clock vs monotonic clock
  5. automation bootstrap   — build the AutomationEngine, start it if enabled
  6. intelligence bootstrap — build the intelligence fabric, activate if enabled

A phase that finds no data scores 0.5 instead of 1.0. A phase that fails
also scores 0.5 and reports a structured warning through `on_warning`; no
phase failure escapes initialize().
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from streamworld.config import (
    AutomationOptions,
    IntelligenceOptions,
    SelfConfiguration,
    StreamWorldConfig,
)
from streamworld.core.automation import AutomationEngine
from streamworld.core.intelligence import (
    STREAM_MODULES,
    DigitalIntelligence,
    NeuralAdapter,
    PredictiveEngine,
)
from streamworld.core.resources import ResourceProbe
from streamworld.core.sensors import EnvironmentSensor, NetworkObserver, TemporalSync
from streamworld.core.types import AwarenessState, NeuralPathways, ResourceConstraints

logger = structlog.get_logger("streamworld.core.awareness")

ConfigLoader = Callable[[], Awaitable[SelfConfiguration]]
WarningSink = Callable[[str, str], None]

# Base intelligence quotient and per-input weights
_BASE_IQ = 100.0
_NETWORK_COMPLEXITY_WEIGHT = 0.2
_PREDICTION_ACCURACY_WEIGHT = 0.3
_ENVIRONMENTAL_WEIGHT = 10.0
_NETWORK_WEIGHT = 15.0
_TEMPORAL_WEIGHT = 25.0

_FULL = 1.0
_PARTIAL = 0.5

_INTERNAL_COMPONENTS = (
    "resource_probe",
    "environment_sensor",
    "network_observer",
    "temporal_sync",
    "automation_engine",
    "digital_intelligence",
)


class AwarenessCore:
    """
    Builds the awareness state and owns the automation engine and the
    digital-intelligence pipeline.
    """

    def __init__(
        self,
        config: StreamWorldConfig | None = None,
        probe: ResourceProbe | None = None,
        environment_sensor: EnvironmentSensor | None = None,
        network_observer: NetworkObserver | None = None,
        temporal_sync: TemporalSync | None = None,
        config_loader: ConfigLoader | None = None,
        on_warning: WarningSink | None = None,
    ) -> None:
        self._config = config or StreamWorldConfig()
        self._probe = probe or ResourceProbe(self._config.resources)
        self._environment = environment_sensor or EnvironmentSensor()
        self._network = network_observer or NetworkObserver()
        self._temporal = temporal_sync or TemporalSync()
        self._config_loader = config_loader
        self._self_config: SelfConfiguration | None = None
        self._on_warning = on_warning
        self._logger = logger.bind(component="awareness_core")

        self._state = AwarenessState()
        self._initialized = False
        self._components: list[str] = []

        self._automation_engine: AutomationEngine | None = None
        self._automation_active = False

        self._digital_intelligence: DigitalIntelligence | None = None
        self._neural_adapter: NeuralAdapter | None = None
        self._predictive_engine: PredictiveEngine | None = None
        self._intelligence_active = False

    def set_warning_sink(self, sink: WarningSink | None) -> None:
        self._on_warning = sink

    # ─── Initialisation ──────────────────────────────────────────────

    async def initialize(self) -> None:
        """Run the six awareness phases in order. Runs once per instance."""
        if self._initialized:
            self._logger.warning("awareness_already_initialized")
            return

        self._logger.info("awareness_initialization_started")

        await self._init_self_awareness()
        await self._init_environmental_awareness()
        await self._init_network_awareness()
        await self._init_temporal_awareness()
        await self._init_automation_awareness()
        await self._init_digital_intelligence()

        self._initialized = True
        self._logger.info("awareness_initialization_complete", **self._state.model_dump())

    async def _init_self_awareness(self) -> None:
        try:
            await self._probe.measure()
            await self._load_self_configuration()
            self._components = self._map_internal_components()
        except Exception as exc:
            self._warn("awareness.self", exc)
            self._state.self_awareness = _PARTIAL
            return
        self._state.self_awareness = _FULL

    async def _init_environmental_awareness(self) -> None:
        try:
            data = await self._environment.collect_data()
        except Exception as exc:
            self._warn("awareness.environment", exc)
            data = None
        self._state.environmental_awareness = _FULL if data else _PARTIAL

    async def _init_network_awareness(self) -> None:
        try:
            status = await self._network.observe()
        except Exception as exc:
            self._warn("awareness.network", exc)
            status = None
        self._state.network_awareness = _FULL if status else _PARTIAL

    async def _init_temporal_awareness(self) -> None:
        try:
            temporal = await self._temporal.sync_time()
        except Exception as exc:
            self._warn("awareness.temporal", exc)
            temporal = None
        self._state.temporal_awareness = _FULL if temporal else _PARTIAL

    async def _init_automation_awareness(self) -> None:
        try:
            await self._build_automation_engine()
            active = await self._activate_automation_if_enabled()
        except Exception as exc:
            self._warn("awareness.automation", exc)
            active = False
        self._state.automation_awareness = _FULL if active else _PARTIAL
        self._logger.info("automation_awareness_initialized", mode="active" if active else "standby")

    async def _init_digital_intelligence(self) -> None:
        try:
            await self._build_intelligence_fabric()
            active = await self._activate_intelligence_if_enabled()
        except Exception as exc:
            self._warn("awareness.intelligence", exc)
            active = False

        iq = self.calculate_intelligence_quotient()
        self._state.intelligence_quotient = iq
        self._logger.info(
            "digital_intelligence_initialized",
            mode="active" if active else "standby",
            intelligence_quotient=round(iq, 2),
        )

    # ─── Automation ──────────────────────────────────────────────────

    async def _build_automation_engine(self) -> AutomationEngine:
        if self._automation_engine is None:
            self._automation_engine = AutomationEngine(
                constraints=await self.get_machine_constraints(),
                network_conditions=self._network.get_conditions(),
                temporal_constraints=self._temporal.get_temporal_boundaries(),
                probe=self._probe,
            )
            if self._digital_intelligence is not None and self._intelligence_active:
                self._automation_engine.register_intelligence(self._digital_intelligence)
        return self._automation_engine

    async def _activate_automation_if_enabled(self) -> bool:
        config = await self._load_self_configuration()
        if config.automation.enabled:
            return await self.enable_automation(config.automation.options)
        return False

    async def enable_automation(self, options: AutomationOptions | dict[str, Any] | None = None) -> bool:
        """Build (if needed), configure and start the automation engine."""
        try:
            engine = await self._build_automation_engine()
            if self._automation_active:
                engine.configure(options)
                return True

            engine.configure(options)
            await engine.initialize()
            await engine.start()
        except Exception as exc:
            self._logger.error("automation_enable_failed", error=str(exc))
            return False

        self._automation_active = True
        self._logger.info("automation_enabled")
        return True

    async def disable_automation(self) -> bool:
        """Gracefully stop the automation engine."""
        if self._automation_engine is None or not self._automation_active:
            return True

        try:
            await self._automation_engine.stop()
        except Exception as exc:
            self._logger.error("automation_disable_failed", error=str(exc))
            return False

        self._automation_active = False
        # Registered tasks go with the engine; re-enabling builds a fresh one
        self._automation_engine = None
        self._logger.info("automation_disabled")
        return True

    async def get_machine_constraints(self) -> ResourceConstraints:
        """Conservative operating limits derived from measured host capacity."""
        reading = self._probe.latest or await self._probe.measure()
        return self._probe.derive_constraints(reading)

    # ─── Digital Intelligence ────────────────────────────────────────

    async def _build_intelligence_fabric(self) -> DigitalIntelligence:
        if self._digital_intelligence is None:
            intelligence = DigitalIntelligence(
                learning_rate=0.01,
                adaptivity_factor=0.85,
                insight_depth=3,
                environmental_context=self._environment.get_context(),
                temporal_awareness=self._temporal.get_temporal_layer(),
                network_insights=self._network.get_pattern_recognition(),
            )
            neural_adapter = NeuralAdapter()
            await neural_adapter.load_pretrained_models()
            predictive_engine = PredictiveEngine()
            await predictive_engine.initialize()
            await intelligence.create_fabric(
                neural_adapter=neural_adapter,
                predictive_engine=predictive_engine,
            )
            self._digital_intelligence = intelligence
            self._neural_adapter = neural_adapter
            self._predictive_engine = predictive_engine
        return self._digital_intelligence

    async def _activate_intelligence_if_enabled(self) -> bool:
        config = await self._load_self_configuration()
        if config.intelligence.enabled:
            return await self.enable_digital_intelligence(config.intelligence.options)
        return False

    async def enable_digital_intelligence(
        self,
        options: IntelligenceOptions | dict[str, Any] | None = None,
    ) -> bool:
        """
        Connect the data streams, initialise the neural pathways and start
        intelligence processing. Registers the module with the automation
        engine when one exists.
        """
        try:
            opts = (
                options if isinstance(options, IntelligenceOptions)
                else IntelligenceOptions.model_validate(options or {})
            )
            intelligence = await self._build_intelligence_fabric()
            assert self._neural_adapter is not None

            intelligence.configure(opts)
            await intelligence.connect_streams(STREAM_MODULES.keys())
            await self._neural_adapter.initialize_pathways(NeuralPathways(
                pattern_recognition=True,
                anomaly_detection=opts.anomaly_detection,
                predictive_analysis=opts.predictive_analysis,
            ))
            await intelligence.activate()

            if self._automation_engine is not None:
                self._automation_engine.register_intelligence(intelligence)
        except Exception as exc:
            self._logger.error("intelligence_enable_failed", error=str(exc))
            return False

        self._intelligence_active = True
        self._logger.info("digital_intelligence_enabled")
        return True

    async def disable_digital_intelligence(self) -> bool:
        if self._digital_intelligence is None or not self._intelligence_active:
            return True
        try:
            await self._digital_intelligence.deactivate()
        except Exception as exc:
            self._logger.error("intelligence_disable_failed", error=str(exc))
            return False
        self._intelligence_active = False
        return True

    def calculate_intelligence_quotient(self) -> float:
        """
        Weighted sum of capabilities and awareness:

            100
            + network complexity x 0.2   (if the neural adapter is initialised)
            + prediction accuracy x 0.3  (if the predictive engine is initialised)
            + environmental x 10 + network x 15 + temporal x 25
        """
        modifiers = 0.0

        if self._neural_adapter is not None and self._neural_adapter.is_initialized():
            modifiers += self._neural_adapter.network_complexity * _NETWORK_COMPLEXITY_WEIGHT

        if self._predictive_engine is not None and self._predictive_engine.is_initialized():
            modifiers += self._predictive_engine.accuracy().overall * _PREDICTION_ACCURACY_WEIGHT

        modifiers += self._state.environmental_awareness * _ENVIRONMENTAL_WEIGHT
        modifiers += self._state.network_awareness * _NETWORK_WEIGHT
        modifiers += self._state.temporal_awareness * _TEMPORAL_WEIGHT

        return _BASE_IQ + modifiers

    # ─── Shutdown ────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop automation and intelligence and discard the engine."""
        await self.disable_automation()
        await self.disable_digital_intelligence()
        self._automation_engine = None
        self._logger.info("awareness_shutdown")

    # ─── Helpers ─────────────────────────────────────────────────────

    async def _load_self_configuration(self) -> SelfConfiguration:
        """Loaded once per instance; later phases reuse it."""
        if self._self_config is None:
            if self._config_loader is not None:
                self._self_config = await self._config_loader()
            else:
                self._self_config = self._config.awareness
        return self._self_config

    def _map_internal_components(self) -> list[str]:
        return list(_INTERNAL_COMPONENTS)

    def _warn(self, component: str, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        self._logger.warning("awareness_phase_degraded", phase=component, error=message)
        if self._on_warning is not None:
            self._on_warning(component, message)

    # ─── Accessors ───────────────────────────────────────────────────

    @property
    def state(self) -> AwarenessState:
        return self._state.model_copy()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def automation_active(self) -> bool:
        return self._automation_active

    @property
    def intelligence_active(self) -> bool:
        return self._intelligence_active

    @property
    def automation_engine(self) -> AutomationEngine | None:
        return self._automation_engine

    @property
    def digital_intelligence(self) -> DigitalIntelligence | None:
        return self._digital_intelligence

    @property
    def components(self) -> list[str]:
        return list(self._components)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "state": self._state.model_dump(),
            "automation_active": self._automation_active,
            "intelligence_active": self._intelligence_active,
            "automation": self._automation_engine.stats if self._automation_engine else None,
            "intelligence": (
                self._digital_intelligence.metrics() if self._digital_intelligence else None
            ),
        }
