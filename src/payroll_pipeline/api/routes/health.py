"""Health check endpoints."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from payroll_pipeline.api.dependencies import DbSession, get_runtime
from payroll_pipeline.runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Database reachability and stage queue backlog."""

    status: str
    timestamp: datetime
    database: str
    engine_version: str
    queue: dict[str, int] | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(
    db: DbSession,
    runtime: Annotated[Runtime, Depends(get_runtime)],
) -> HealthResponse:
    """Check the database and report stage jobs per queue state."""
    queue_counts = None
    try:
        await db.execute(text("SELECT 1"))
        queue_counts = await runtime.queue.counts_by_state()
    except SQLAlchemyError:
        logger.exception("Database health check failed")

    healthy = queue_counts is not None
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if healthy else "unhealthy",
        engine_version=runtime.settings.engine_version,
        queue=queue_counts,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(runtime: Annotated[Runtime, Depends(get_runtime)]) -> dict[str, str]:
    """Ready once the runtime is wired; 503 before that."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
