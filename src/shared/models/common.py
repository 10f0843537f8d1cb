"""Common Pydantic v2 data models shared across the service."""
from __future__ import annotations

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Health status of the service."""
    status: str = Field(
        default="healthy",
        pattern=r"^(healthy|degraded|unhealthy)$"
    )
    service_name: str
    version: str
    database: str = Field(
        default="connected",
        pattern=r"^(connected|disabled)$"
    )
    uptime_seconds: float
