"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe, 200 whenever the process is up."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(req: Request) -> dict[str, object]:
    """Readiness probe with the in-memory session count."""
    return {"status": "ready", "sessions": len(req.app.state.sessions)}
