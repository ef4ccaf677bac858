"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from blomst.core.config import settings
from blomst.core.deps import get_db, get_zone_matcher
from blomst.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """
    Health check endpoint.

    Checks database and broker connectivity and whether a zone table is loaded.
    """
    checks: dict[str, str] = {}
    healthy = True

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        healthy = False
        checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis connection (Celery broker)
    try:
        import redis.asyncio as redis

        redis_client = redis.from_url(str(settings.redis_url))  # type: ignore[no-untyped-call]
        await redis_client.ping()
        await redis_client.aclose()
        checks["redis"] = "healthy"
    except Exception as e:
        healthy = False
        checks["redis"] = f"unhealthy: {str(e)}"

    # An empty zone table is not fatal, orders just stay unrouted
    zones = len(get_zone_matcher().config)
    checks["zones"] = f"{zones} entries" if zones else "empty"

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}
