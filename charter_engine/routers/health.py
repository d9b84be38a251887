"""Liveness, readiness and service info probes."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..core.clock import utcnow
from ..core.config import settings
from ..core.database import async_session_factory
from ..core.observability import SERVICE_NAME
from ..schemas.health import HealthResponse, HealthStatus, Readiness, ServiceHealth, ServiceInfo

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

router = APIRouter(prefix="/v1/health", tags=["health"])

# Unprefixed probes for load balancers and orchestrators
probe_router = APIRouter(tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """RPC-style liveness check carrying the server clock."""
    return HealthResponse(status=HealthStatus.HEALTHY, timestamp=utcnow(), version=API_VERSION)


@probe_router.get("/health", response_model=ServiceHealth)
async def health_check() -> ServiceHealth:
    return ServiceHealth(
        status=HealthStatus.HEALTHY,
        service=SERVICE_NAME,
        version=API_VERSION,
        environment=settings.environment,
    )


@probe_router.get(
    "/ready",
    response_model=Readiness,
    responses={503: {"model": Readiness, "description": "Database unavailable"}},
)
async def readiness_check():
    """Ready only when the database answers a trivial query."""
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed", extra={"error": str(e)})
        not_ready = Readiness(
            status=HealthStatus.NOT_READY,
            service=SERVICE_NAME,
            checks={"database": "unavailable"},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=not_ready.model_dump(mode="json"),
        )

    return Readiness(status=HealthStatus.READY, service=SERVICE_NAME, checks={"database": "ok"})


@probe_router.get("/info", response_model=ServiceInfo)
async def service_info() -> ServiceInfo:
    return ServiceInfo(
        service=SERVICE_NAME,
        version=API_VERSION,
        environment=settings.environment,
        hold_ttl_seconds=settings.hold_ttl_seconds,
        waitlist_response_window_seconds=settings.waitlist_response_window_seconds,
        payment_handoff_max_attempts=settings.payment_handoff_max_attempts,
        docs_url="/docs" if settings.debug else None,
    )
