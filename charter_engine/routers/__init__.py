"""FastAPI routers package."""

from .availability import router as availability_router
from .booking import router as booking_router
from .charter import router as charter_router
from .health import probe_router, router as health_router
from .metrics import router as metrics_router
from .price_alert import router as price_alert_router
from .referral import router as referral_router
from .waitlist import router as waitlist_router

__all__ = [
    "availability_router",
    "booking_router",
    "charter_router",
    "health_router",
    "metrics_router",
    "price_alert_router",
    "probe_router",
    "referral_router",
    "waitlist_router",
]
