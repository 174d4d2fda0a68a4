"""Health and version endpoints for home-ctrl (public, no auth).

Implements:
  GET /health          — liveness + readiness (503 before lifespan startup completes)
  GET /api/v1/health   — same body, under the versioned API prefix
  GET /api/v1/version  — service name and version

Readiness follows ``app.state.ready``, set at the end of lifespan startup and
cleared on shutdown. Once ready, a failing database probe reports "degraded"
(still HTTP 200) so the process is not restarted for a transient storage error.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from homectrl import __version__
from homectrl.constants import SERVICE_NAME
from homectrl.storage.database import Database

router = APIRouter(tags=["health"])
api_router = APIRouter(tags=["health"])


async def _health_response(request: Request) -> Any:
    if not getattr(request.app.state, "ready", False):
        return JSONResponse(
            status_code=503,
            content={
                "status": "starting",
                "message": "home-ctrl is starting up",
            },
        )

    db: Database = request.app.state.db
    database_ok = await db.health_check()
    return {
        "status": "ok" if database_ok else "degraded",
        "message": "Service is running",
        "database": "ok" if database_ok else "error",
    }


@router.get("/health")
async def health(request: Request) -> Any:
    """Primary health check.

    Response body (200):
        {"status": "ok" | "degraded", "message": "Service is running",
         "database": "ok" | "error"}

    Response body (503):
        {"status": "starting", "message": "home-ctrl is starting up"}
    """
    return await _health_response(request)


@api_router.get("/health")
async def api_health(request: Request) -> Any:
    return await _health_response(request)


@api_router.get("/version")
async def version() -> dict[str, str]:
    return {"version": __version__, "name": SERVICE_NAME}
