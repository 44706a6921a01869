"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from vetclinic.config import settings
from vetclinic.core.redis_client import check_redis_connection
from vetclinic.database import check_database_connection
from vetclinic.events.bus import get_event_bus

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health of the service and each backing dependency."""

    database: str
    redis: str
    event_bus: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Liveness probe; does not touch any dependency."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Readiness probe covering the database, Redis and the event consumers.

    Redis only backs the directory cache, so losing it degrades the service
    without making it unhealthy.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()
    events_running = get_event_bus().running

    if not db_healthy:
        overall = "unhealthy"
    elif redis_healthy and events_running:
        overall = "healthy"
    else:
        overall = "degraded"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        event_bus="running" if events_running else "stopped",
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """
    Simple ping endpoint.

    Returns:
        Pong response
    """
    return {"message": "pong"}
