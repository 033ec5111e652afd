"""Health check and metrics endpoints."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wotc_relay import __version__
from wotc_relay.api.dependencies import DbSession
from wotc_relay.api.schemas.health import DatabaseHealth, HealthResponse, HealthStatus
from wotc_relay.observability.metrics import get_metrics

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Liveness plus database reachability. No authentication required.",
)
async def health_check(db: DbSession) -> HealthResponse:
    database = await _check_database(db)
    return HealthResponse(
        status=database.status,
        version=__version__,
        timestamp=datetime.now(UTC),
        database=database,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)


async def _check_database(db: AsyncSession) -> DatabaseHealth:
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return DatabaseHealth(
            status=HealthStatus.UNHEALTHY,
            message=f"Database connection failed: {str(e)[:100]}",
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
    return DatabaseHealth(
        status=HealthStatus.HEALTHY,
        message="Database connection successful",
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )
