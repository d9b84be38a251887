"""Booking-related Pydantic schemas."""

import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from ..models.booking import BookingStatus, ReservationStage, TripDuration
from .common import Money


class PaymentOutcome(str, Enum):
    """Terminal results the payment processor reports."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"


class CreateBookingRequest(BaseModel):
    """Request schema for booking a charter date."""

    charter_id: str = Field(..., description="Charter to book")
    date: dt.date = Field(..., description="Requested trip date")
    customer_ref: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    duration: TripDuration = Field(TripDuration.HALF_DAY, description="Trip length")
    party_size: int = Field(1, ge=1, le=50, description="Number of guests")
    referral_code: str | None = Field(None, max_length=32, description="Optional referral code")

    @field_validator("referral_code")
    @classmethod
    def normalize_referral_code(cls, v: str | None) -> str | None:
        """Blank codes mean no code; codes are case-insensitive."""
        if v is None or not v.strip():
            return None
        return v.strip().upper()


class PaymentCallbackRequest(BaseModel):
    """Terminal callback from the payment processor, keyed by booking id."""

    booking_id: str = Field(..., description="Correlation id sent with the payment session")
    outcome: PaymentOutcome = Field(..., description="Payment result")
    session_id: str | None = Field(None, description="Processor session identifier")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")
    reason: str = Field("customer_request", max_length=255, description="Why the booking was cancelled")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class Booking(BaseModel):
    """Booking response schema."""

    booking_id: str = Field(..., description="Unique booking ID")
    charter_id: str = Field(..., description="Booked charter")
    captain_id: str = Field(..., description="Captain whose calendar holds the slot")
    customer_ref: str = Field(..., description="Customer reference")
    date: dt.date = Field(..., description="Trip date")
    duration: TripDuration = Field(..., description="Trip length")
    party_size: int = Field(..., description="Number of guests")
    status: BookingStatus = Field(..., description="Booking status")
    stage: ReservationStage = Field(..., description="Reservation state machine position")
    base_price: Money = Field(..., description="List price")
    discount: Money = Field(..., description="Referral discount")
    final_price: Money = Field(..., description="Amount charged")
    referral_code: str | None = Field(None, description="Applied referral code")
    checkout_url: str | None = Field(None, description="Where the customer completes payment")
    hold_expires_at: dt.datetime = Field(..., description="When the provisional hold lapses (ISO 8601)")
    failure_reason: str | None = Field(None, description="Why the booking did not complete")
