"""
StreamWorld — Configuration System

All configuration is Pydantic-validated and loaded from:
1. a YAML file (defaults for the deployment)
2. Environment variables (overrides)

The self-configuration consulted by the awareness core (automation and
intelligence switches) lives here too, so every tunable has its default
enumerated in one place.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class WorldConfig(BaseModel):
    # Connect the wallet during run() without waiting for a user action
    auto_connect: bool = False
    # Per-subsystem initializer timeout. The stores have no timeout of their own.
    init_timeout_s: float = Field(30.0, gt=0.0)
    wallet_refresh_interval_s: float = Field(30.0, gt=0.0)
    shutdown_timeout_s: float = Field(30.0, gt=0.0)
    # Persisted dark-mode flag
    theme_state_path: str = "data/theme"


class ResourceConfig(BaseModel):
    # Fallbacks for readings the host cannot report
    default_bandwidth_mbps: float = 12.5  # MB/s (100 Mbit)
    default_disk_io_kbps: float = 102_400.0
    # Share of measured capacity granted to background automation
    cpu_fraction: float = Field(0.5, gt=0.0, le=1.0)
    memory_fraction: float = Field(0.7, gt=0.0, le=1.0)
    bandwidth_fraction: float = Field(0.5, gt=0.0, le=1.0)
    disk_io_fraction: float = Field(0.3, gt=0.0, le=1.0)


class AutomationOptions(BaseModel):
    schedule_enabled: bool = True
    event_triggers_enabled: bool = True
    notifications_enabled: bool = False
    resource_priority: Literal["low", "normal", "high"] = "normal"
    # None disables the per-handler timeout
    task_timeout_s: float | None = 300.0
    stop_timeout_s: float = Field(30.0, gt=0.0)

    model_config = {"extra": "forbid"}


class IntelligenceOptions(BaseModel):
    learning_enabled: bool = True
    anomaly_detection: bool = True
    predictive_analysis: bool = True
    adaptive_interface: bool = False
    insight_generation: bool = True
    learning_rate: float | None = None
    adaptivity_factor: float | None = None
    insight_depth: int | None = Field(None, ge=1)
    max_resource_usage: float = Field(0.25, gt=0.0, le=1.0)

    model_config = {"extra": "forbid"}


class AutomationSettings(BaseModel):
    enabled: bool = False
    options: AutomationOptions = Field(default_factory=AutomationOptions)


class IntelligenceSettings(BaseModel):
    enabled: bool = False
    options: IntelligenceOptions = Field(default_factory=IntelligenceOptions)


class SelfConfiguration(BaseModel):
    """Switches the awareness core reads while bootstrapping."""

    automation: AutomationSettings = Field(default_factory=AutomationSettings)
    intelligence: IntelligenceSettings = Field(default_factory=IntelligenceSettings)


class ApiConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:8080"])


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: Literal["console", "json"] = "console"
    # None: colour only when stdout is a terminal
    colors: bool | None = None
    # Raised to WARNING
    quiet_loggers: list[str] = Field(default_factory=lambda: ["asyncio", "uvicorn.access"])


# ─── Root Configuration ──────────────────────────────────────────


class StreamWorldConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMWORLD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    instance_id: str = "streamworld-default"

    world: WorldConfig = Field(default_factory=WorldConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    awareness: SelfConfiguration = Field(default_factory=SelfConfiguration)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> StreamWorldConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            raw = _read_yaml(path)

    if instance_id := os.environ.get("STREAMWORLD_INSTANCE_ID"):
        raw["instance_id"] = instance_id
    if auto_connect := os.environ.get("STREAMWORLD_AUTO_CONNECT"):
        raw.setdefault("world", {})["auto_connect"] = auto_connect.lower() in ("true", "1", "yes")
    if log_level := os.environ.get("STREAMWORLD_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if overrides:
        raw = _deep_merge(raw, overrides)

    return StreamWorldConfig(**raw)


def load_self_configuration(path: str | Path) -> SelfConfiguration:
    """Load a standalone self-configuration (automation / intelligence switches)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Self-configuration not found: {path}")

    return SelfConfiguration(**_read_yaml(path))
