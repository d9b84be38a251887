"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, ReservationStage, TripDuration
from .calendar_entry import CalendarEntry, SlotStatus
from .charter import Charter
from .idempotency import IdempotencyRecord
from .price_alert import PriceAlert, PriceAlertStatus
from .referral import RedemptionState, ReferralCode, ReferralRedemption
from .waitlist import WaitlistEntry, WaitlistStatus

__all__ = [
    # Catalog
    "Charter",
    
    # Calendar
    "CalendarEntry",
    "SlotStatus",
    
    # Bookings
    "Booking",
    "BookingStatus",
    "ReservationStage",
    "TripDuration",
    
    # Waitlist
    "WaitlistEntry",
    "WaitlistStatus",
    
    # Referrals
    "ReferralCode",
    "ReferralRedemption",
    "RedemptionState",
    
    # Price alerts
    "PriceAlert",
    "PriceAlertStatus",
    
    # Idempotency
    "IdempotencyRecord",
]
