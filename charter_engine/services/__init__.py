"""Service layer package."""

from .calendar_store import CalendarStore, ClaimResult
from .charter_service import CharterService
from .conflict_guard import Availability, ConflictGuard
from .idempotency_service import IdempotencyService
from .price_alert_service import PriceAlertService
from .referral_service import Quote, ReferralService
from .reservation_service import ReservationService
from .waitlist_service import WaitlistService

__all__ = [
    "Availability",
    "CalendarStore",
    "CharterService",
    "ClaimResult",
    "ConflictGuard",
    "IdempotencyService",
    "PriceAlertService",
    "Quote",
    "ReferralService",
    "ReservationService",
    "WaitlistService",
]
