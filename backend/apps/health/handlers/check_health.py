"""GET /health - Check health of all services."""

from datetime import UTC, datetime

from fastapi import Depends
from pydantic import BaseModel, Field

from config import APP_CONFIG, get_settings
from db.engine import Database
from dependencies import get_database, get_vector_store
from services.vector_store import VectorStoreService

# --- Response Schemas ---


class ServiceStatus(BaseModel):
    """Status of an individual service."""

    name: str
    status: str = Field(..., description="healthy, unhealthy, or disabled")
    latency_ms: float | None = Field(None, description="Response time in ms")
    error: str | None = Field(None, description="Error message if unhealthy")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Environment name")
    services: list[ServiceStatus] = Field(
        ..., description="Individual service statuses"
    )
    timestamp: datetime


# --- Handler ---


async def check_health(
    database: Database = Depends(get_database),
    vector_store: VectorStoreService | None = Depends(get_vector_store),
) -> HealthResponse:
    """Check health of all services.

    The database is required; an unhealthy vector index only degrades the
    service since answers fall back to structured evidence.
    """
    settings = get_settings()

    db_health = await database.health_check()
    services = [
        ServiceStatus(
            name="database",
            status=db_health["status"],
            latency_ms=db_health.get("latency_ms"),
            error=db_health.get("error"),
        ),
    ]

    if vector_store is None:
        services.append(ServiceStatus(name="qdrant", status="disabled"))
    else:
        qdrant_health = await vector_store.health_check()
        services.append(
            ServiceStatus(
                name="qdrant",
                status=qdrant_health["status"],
                latency_ms=qdrant_health.get("latency_ms"),
                error=qdrant_health.get("error"),
            )
        )

    if db_health["status"] != "healthy":
        overall = "unhealthy"
    elif any(s.status == "unhealthy" for s in services):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=APP_CONFIG["version"],
        environment=settings.environment,
        services=services,
        timestamp=datetime.now(UTC),
    )
