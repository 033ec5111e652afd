"""Schemas for the liveness endpoint."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class DatabaseHealth(BaseModel):
    """Result of a ``SELECT 1`` round trip."""

    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None


class HealthResponse(BaseModel):
    """Process liveness plus database reachability."""

    status: HealthStatus
    version: str
    timestamp: datetime
    database: DatabaseHealth | None = Field(default=None)
