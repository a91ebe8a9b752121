"""
StreamWorld — Digital Intelligence

Lightweight learning pipeline fed by named data streams and by the
observations of automation tasks. Four learning modules track the streams;
an insight is raised when a reported value departs from a module's running
mean. The neural adapter and predictive engine contribute to the
intelligence quotient once initialised.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from streamworld.config import IntelligenceOptions
from streamworld.core.types import Insight, NeuralPathways, PredictionAccuracy

logger = structlog.get_logger("streamworld.core.intelligence")

# stream id -> learning module key
STREAM_MODULES: dict[str, str] = {
    "market-data": "market",
    "user-behavior": "user",
    "network-metrics": "network",
    "transaction-patterns": "transaction",
}

# learning module key -> (name, dimensions, rate multiplier)
_MODULE_SPECS: dict[str, tuple[str, tuple[str, ...], float]] = {
    "transaction": ("transaction-patterns", ("time", "value", "frequency", "gas"), 1.0),
    "user": ("user-behavior", ("interaction", "preferences", "risk-profile"), 0.8),
    "market": ("market-patterns", ("volatility", "trend", "correlation", "volume"), 1.2),
    "network": ("network-optimization", ("congestion", "gas-price", "finality-time"), 1.0),
}

_MAX_INSIGHTS = 200


class LearningModule:
    def __init__(self, name: str, dimensions: Iterable[str], learning_rate: float) -> None:
        self.name = name
        self.dimensions = tuple(dimensions)
        self.learning_rate = learning_rate
        self.active = False
        self.data_points = 0
        self._values = 0
        self._mean: float | None = None

    def activate(self) -> None:
        self.active = True

    def learn(self, data: dict[str, Any]) -> float | None:
        """
        Absorb a data point. Returns the relative deviation of its numeric
        `value` from the running mean, or None if it carries no value.
        """
        self.data_points += 1
        value = data.get("value")
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return None

        self._values += 1
        if self._mean is None:
            self._mean = float(value)
            return 0.0

        deviation = abs(value - self._mean) / max(abs(self._mean), 1e-9)
        self._mean += (value - self._mean) / self._values
        return deviation

    @property
    def learning_progress(self) -> float:
        return min(1.0, self.data_points * self.learning_rate)

    @property
    def metrics(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "learning_rate": self.learning_rate,
            "data_points": self.data_points,
            "learning_progress": round(self.learning_progress, 4),
        }


class NeuralAdapter:
    """Holds the enabled neural pathways and any pretrained models."""

    def __init__(self) -> None:
        self._models: list[str] = []
        self._pathways: NeuralPathways | None = None

    async def load_pretrained_models(self, models: Iterable[str] = ()) -> None:
        self._models = list(models)

    async def initialize_pathways(self, pathways: NeuralPathways) -> None:
        self._pathways = pathways
        logger.info(
            "neural_pathways_initialized",
            pattern_recognition=pathways.pattern_recognition,
            anomaly_detection=pathways.anomaly_detection,
            predictive_analysis=pathways.predictive_analysis,
        )

    def is_initialized(self) -> bool:
        return self._pathways is not None

    @property
    def pathways(self) -> NeuralPathways | None:
        return self._pathways

    @property
    def network_complexity(self) -> float:
        if self._pathways is None:
            return 0.0
        enabled = sum(
            1 for flag in (
                self._pathways.pattern_recognition,
                self._pathways.anomaly_detection,
                self._pathways.predictive_analysis,
            ) if flag
        )
        return enabled * 10.0 + len(self._models) * 5.0


class PredictiveEngine:
    def __init__(self) -> None:
        self._initialized = False
        self._hits = 0
        self._samples = 0

    async def initialize(self) -> None:
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def record_outcome(self, predicted: float, actual: float, tolerance: float = 0.05) -> bool:
        """Score one prediction. A hit is within `tolerance` relative error."""
        self._samples += 1
        hit = abs(predicted - actual) <= tolerance * max(abs(actual), 1e-9)
        if hit:
            self._hits += 1
        return hit

    def accuracy(self) -> PredictionAccuracy:
        overall = 100.0 * self._hits / self._samples if self._samples else 0.0
        return PredictionAccuracy(overall=overall, samples=self._samples)


class DigitalIntelligence:
    """
    Routes stream data into learning modules and raises insights.

    Streams must be connected before their data is learned from; data for an
    unconnected stream is ignored.
    """

    def __init__(
        self,
        learning_rate: float = 0.01,
        adaptivity_factor: float = 0.85,
        insight_depth: int = 3,
        environmental_context: dict[str, Any] | None = None,
        temporal_awareness: dict[str, Any] | None = None,
        network_insights: dict[str, Any] | None = None,
    ) -> None:
        self.learning_rate = learning_rate
        self.adaptivity_factor = adaptivity_factor
        self.insight_depth = insight_depth
        self.environmental_context = environmental_context or {}
        self.temporal_awareness = temporal_awareness or {}
        self.network_insights = network_insights or {}
        self._logger = logger.bind(component="digital_intelligence")

        self._modules: dict[str, LearningModule] = {
            key: LearningModule(name, dims, learning_rate * multiplier)
            for key, (name, dims, multiplier) in _MODULE_SPECS.items()
        }
        self._streams: list[str] = []
        self._fabric: dict[str, Any] = {}
        self._insights: list[Insight] = []
        self._insight_count = 0
        self._active = False
        self._learning_enabled = True
        self._insight_generation = True

    # ─── Configuration ───────────────────────────────────────────────

    def configure(self, options: IntelligenceOptions) -> None:
        if options.learning_rate is not None:
            self.learning_rate = options.learning_rate
            for key, module in self._modules.items():
                module.learning_rate = options.learning_rate * _MODULE_SPECS[key][2]
        if options.adaptivity_factor is not None:
            self.adaptivity_factor = options.adaptivity_factor
        if options.insight_depth is not None:
            self.insight_depth = options.insight_depth
        self._learning_enabled = options.learning_enabled
        self._insight_generation = options.insight_generation

    async def connect_streams(self, stream_ids: Iterable[str]) -> None:
        for stream_id in stream_ids:
            if stream_id not in STREAM_MODULES:
                raise ValueError(f"Unknown data stream: {stream_id}")
            if stream_id not in self._streams:
                self._streams.append(stream_id)
        self._logger.info("data_streams_connected", streams=list(self._streams))

    async def create_fabric(self, **components: Any) -> dict[str, Any]:
        fabric: dict[str, Any] = dict(components)
        for key, module in self._modules.items():
            fabric[f"learning-{key}"] = module
        self._fabric = fabric
        return fabric

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def activate(self) -> None:
        if self._active:
            return
        for module in self._modules.values():
            module.activate()
        self._active = True
        self._logger.info("digital_intelligence_activated")

    async def deactivate(self) -> None:
        self._active = False
        self._logger.info("digital_intelligence_deactivated")

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def connected_streams(self) -> list[str]:
        return list(self._streams)

    # ─── Processing ──────────────────────────────────────────────────

    def observe(self, stream_id: str, data: dict[str, Any]) -> Insight | None:
        """Feed one data point. Returns the insight it produced, if any."""
        if not self._active or not self._learning_enabled or stream_id not in self._streams:
            return None

        module = self._modules[STREAM_MODULES[stream_id]]
        deviation = module.learn(data)
        if deviation is None or not self._insight_generation:
            return None

        threshold = 1.0 / self.insight_depth
        if deviation <= threshold:
            return None

        insight = Insight(
            source=stream_id,
            description=f"{module.name} value deviates {deviation:.0%} from its running mean",
            confidence=min(1.0, module.learning_progress),
            importance=min(1.0, deviation / (threshold * 4)),
        )
        self._insight_count += 1
        self._insights.append(insight)
        del self._insights[:-_MAX_INSIGHTS]

        if insight.importance > 0.7:
            self._logger.info(
                "insight_generated",
                source=stream_id,
                description=insight.description,
                confidence=round(insight.confidence, 2),
            )
        return insight

    @property
    def insights(self) -> list[Insight]:
        return list(self._insights)

    def metrics(self) -> dict[str, Any]:
        modules = list(self._modules.values())
        return {
            "active": self._active,
            "streams": list(self._streams),
            "learning_progress": sum(m.learning_progress for m in modules) / len(modules),
            "insight_count": self._insight_count,
            "modules": {key: m.metrics for key, m in self._modules.items()},
        }
