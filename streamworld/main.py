"""
StreamWorld — Application Entry Point

The composition root: builds the stores, the awareness core and the World,
runs the world for the lifetime of the FastAPI application and shuts it
down on exit.

`uvicorn streamworld.main:app`
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from functools import partial

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env file before any configuration is loaded
load_dotenv()

from streamworld import __version__
from streamworld.api.routers.world import router as world_router
from streamworld.config import StreamWorldConfig, load_config
from streamworld.core.awareness import AwarenessCore
from streamworld.core.resources import ResourceProbe
from streamworld.core.world import World
from streamworld.stores import (
    FileThemeStore,
    MemoryConfigStore,
    MemoryContentStore,
    MemoryMetaStore,
    MemoryStreamingStore,
    MemoryUserStore,
    MemoryWalletStore,
    Stores,
)
from streamworld.telemetry.logging import setup_logging

logger = structlog.get_logger()


def build_world(config: StreamWorldConfig) -> World:
    """Wire the development store bundle and the awareness core into a World."""
    stores = Stores(
        config=MemoryConfigStore(),
        meta=MemoryMetaStore(),
        theme=FileThemeStore(config.world.theme_state_path),
        wallet=MemoryWalletStore(),
        user=MemoryUserStore(),
        content=MemoryContentStore(),
        streaming=MemoryStreamingStore(),
    )
    probe = ResourceProbe(config.resources)
    return World(
        stores,
        config=config,
        awareness_factory=partial(AwarenessCore, config=config, probe=probe),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown sequence."""
    # ── 1. Load configuration ─────────────────────────────────
    config_path = os.environ.get("STREAMWORLD_CONFIG_PATH", "config/default.yaml")
    config = load_config(config_path)
    app.state.config = config

    # ── 2. Set up logging ─────────────────────────────────────
    setup_logging(config.logging, instance_id=config.instance_id)
    logger.info(
        "streamworld_starting",
        instance_id=config.instance_id,
        config_path=config_path,
    )

    # ── 3. Run the world ──────────────────────────────────────
    world = build_world(config)
    app.state.world = world

    if not await world.run():
        # Keep serving so the status surface can report the failure
        logger.error("streamworld_world_failed", errors=len(world.get_state().errors))

    logger.info("streamworld_ready", health=world.get_state().health.value)

    yield

    # ── Shutdown ──────────────────────────────────────────────
    logger.info("streamworld_shutting_down")
    await world.shutdown()
    logger.info("streamworld_shutdown_complete")


# ─── FastAPI Application ─────────────────────────────────────────

app = FastAPI(
    title="StreamWorld",
    description="Lifecycle orchestrator for the streaming service",
    version=__version__,
    lifespan=lifespan,
)

_cors_origins = list(StreamWorldConfig().api.cors_origins)
# Allow additional origins via env var (comma-separated)
_extra_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "")
if _extra_origins:
    _cors_origins.extend(o.strip() for o in _extra_origins.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(world_router)


@app.get("/health")
async def health() -> dict[str, object]:
    """Liveness probe."""
    world: World | None = getattr(app.state, "world", None)
    if world is None:
        return {"status": "not_initialized"}
    return {
        "status": world.get_state().health.value,
        "version": __version__,
        "instance_id": app.state.config.instance_id,
    }


if __name__ == "__main__":
    import uvicorn

    _config = load_config(os.environ.get("STREAMWORLD_CONFIG_PATH", "config/default.yaml"))
    uvicorn.run("streamworld.main:app", host=_config.api.host, port=_config.api.port)
