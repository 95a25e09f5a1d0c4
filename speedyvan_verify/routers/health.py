"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from speedyvan_verify.core.migrations import check_migrations_current
from speedyvan_verify.database import check_database_connection

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=None)
async def health_check() -> Response:
    """
    Health check endpoint with database status.

    Returns:
        {"status": "healthy", "database": "connected"} when the database answers
        {"status": "degraded", "database": "disconnected"} otherwise (503)
    """
    if await check_database_connection():
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "healthy", "database": "connected"},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "degraded", "database": "disconnected"},
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe. Never touches external dependencies."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> Response:
    """
    Readiness probe.

    Ready only when the database is reachable and its schema is at the
    latest migration, so traffic is not routed to a pod that would fail
    every OTP query.
    """
    db_connected = await check_database_connection()
    migrations_current = db_connected and await check_migrations_current()

    content = {
        "status": "ready" if migrations_current else "not_ready",
        "database": "connected" if db_connected else "disconnected",
        "migrations": "current" if migrations_current else "pending",
    }
    return JSONResponse(
        status_code=(
            status.HTTP_200_OK
            if migrations_current
            else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=content,
    )
