"""Health check endpoint."""
from __future__ import annotations

import time

import asyncpg
from fastapi import APIRouter, Request

from src.server.context import get_config
from src.shared.constants import HEALTH_RETRY_AFTER_SECONDS, VERSION
from src.shared.errors import ServiceUnavailableError
from src.shared.models.common import HealthStatus

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthStatus)
async def health(request: Request) -> HealthStatus:
    """Report version and uptime; 503 while the database is unreachable."""
    config = get_config()

    db_status = "disabled"
    pool = getattr(request.app.state, "db", None)
    if pool is not None:
        try:
            await pool.fetchval("SELECT 1")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise ServiceUnavailableError(
                detail=f"database unreachable: {exc}",
                retry_after=HEALTH_RETRY_AFTER_SECONDS,
            ) from exc
        db_status = "connected"

    start_time = getattr(request.app.state, "start_time", None) or time.time()

    return HealthStatus(
        service_name=config.service_name,
        version=VERSION,
        database=db_status,
        uptime_seconds=time.time() - start_time,
    )
