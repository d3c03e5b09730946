"""Health check endpoints."""

from fastapi import APIRouter, Request

from learntrack.config import get_settings
from learntrack.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the storage and lock backends in use."""
    settings = get_settings()
    locks = getattr(request.app.state, "lock_manager", None)
    return {
        "status": "ready",
        "environment": settings.environment,
        "cassandra": AsyncCassandraConnection.is_connected(),
        "distributed_locks": bool(locks and locks.is_distributed),
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
