"""
StreamWorld — World REST Router

Exposes the orchestrator's lifecycle and health to the status widget.

Endpoints:
  GET  /api/v1/world/state      — Full WorldState snapshot
  GET  /api/v1/world/health     — Health badge (status, uptime, error count)
  POST /api/v1/world/run        — Run the world (optionally auto-connecting the wallet)
  POST /api/v1/world/shutdown   — Tear down and reset to pre-init state
  GET  /api/v1/world/awareness  — Awareness scalars and automation stats
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

logger = structlog.get_logger("streamworld.api.world")

router = APIRouter()


class RunRequest(BaseModel):
    auto_connect: bool | None = None


@router.get("/api/v1/world/state")
async def get_world_state(request: Request) -> dict[str, Any]:
    """Return the current world state."""
    world = request.app.state.world
    return world.get_state().model_dump(mode="json")


@router.get("/api/v1/world/health")
async def get_world_health(request: Request) -> dict[str, Any]:
    world = request.app.state.world
    state = world.get_state()
    return {
        "status": state.health.value,
        "uptime_s": round(world.uptime_s, 2),
        "errors": len(state.errors),
    }


@router.post("/api/v1/world/run")
async def run_world(request: Request, body: RunRequest | None = None) -> dict[str, Any]:
    """Run the world. Subsystem failures are reported in the state, not as HTTP errors."""
    world = request.app.state.world
    auto_connect = body.auto_connect if body is not None else None
    ok = await world.run(auto_connect=auto_connect)
    return {"ok": ok, "state": world.get_state().model_dump(mode="json")}


@router.post("/api/v1/world/shutdown")
async def shutdown_world(request: Request) -> dict[str, Any]:
    world = request.app.state.world
    try:
        await world.shutdown()
    except Exception as exc:
        logger.error("world_shutdown_request_failed", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return world.get_state().model_dump(mode="json")


@router.get("/api/v1/world/awareness")
async def get_world_awareness(request: Request) -> dict[str, Any]:
    """Return awareness scalars and automation stats."""
    awareness = request.app.state.world.awareness
    if awareness is None:
        return {"status": "unavailable", "error": "Awareness not initialized"}

    return {
        "status": "ok",
        "data": awareness.stats,
    }
