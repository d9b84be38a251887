"""Health-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    READY = "ready"
    NOT_READY = "not_ready"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field("1.0.0", description="API version")


class ServiceHealth(BaseModel):
    status: HealthStatus
    service: str
    version: str
    environment: str


class Readiness(BaseModel):
    """Readiness probe result; ``checks`` maps a dependency to ok/unavailable."""

    status: HealthStatus
    service: str
    checks: dict[str, str]


class ServiceInfo(BaseModel):
    service: str
    version: str
    environment: str
    hold_ttl_seconds: int
    waitlist_response_window_seconds: int
    payment_handoff_max_attempts: int
    docs_url: Optional[str] = None
