"""Application factory for the charter reservation engine."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    availability_router,
    booking_router,
    charter_router,
    health_router,
    metrics_router,
    price_alert_router,
    probe_router,
    referral_router,
    waitlist_router,
)
from .workers.manager import worker_manager

setup_structured_logging()

logger = logging.getLogger(__name__)

ROUTERS = (
    probe_router,
    health_router,
    charter_router,
    availability_router,
    booking_router,
    waitlist_router,
    referral_router,
    price_alert_router,
    metrics_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Bring up telemetry, schema and sweeps; tear them down in reverse."""
    logger.info("Starting reservation engine", extra={"environment": settings.environment, "debug": settings.debug})

    try:
        setup_tracing(SERVICE_NAME)
        setup_metrics(SERVICE_NAME)
        instrument_sqlalchemy(engine)
        await init_db()
        await worker_manager.start_all()
    except Exception as e:
        logger.error("Reservation engine failed to start", extra={"error": str(e)})
        raise

    logger.info("Reservation engine ready", extra={"workers": len(worker_manager.workers)})

    yield

    logger.info("Shutting down reservation engine")
    try:
        await worker_manager.stop_all()
        await close_db()
    except Exception as e:
        logger.error("Error while shutting down", extra={"error": str(e)})

    logger.info("Reservation engine stopped")


def create_app() -> FastAPI:
    """
    Build the application: middleware, problem handlers and every router.

    Collaborators (database session, payment gateway, notifier) are
    resolved through dependencies, so tests override them on the
    returned app.
    """
    app = FastAPI(
        title="Charter Reservation Engine",
        description="RPC-over-HTTP API for charter date availability, double-booking prevention, waitlists, referral pricing and price alerts",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate", "Retry-After"],
    )
    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    for router in ROUTERS:
        app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "charter_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
