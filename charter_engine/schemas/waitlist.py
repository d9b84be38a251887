"""Waitlist-related Pydantic schemas."""

import datetime as dt

from pydantic import BaseModel, Field

from ..models.waitlist import WaitlistStatus
from .booking import Booking


class WaitlistCustomer(BaseModel):
    """Who to offer the slot to, and how to reach them."""

    customer_ref: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Contact email")
    phone: str | None = Field(None, max_length=32, description="Contact phone")


class JoinWaitlistRequest(BaseModel):
    """Request schema for joining a waitlist."""

    charter_id: str = Field(..., description="Charter to wait for")
    date: dt.date = Field(..., description="Requested date")
    customer: WaitlistCustomer
    party_size: int = Field(..., ge=1, le=50, description="Number of guests")


class RespondWaitlistRequest(BaseModel):
    """A notified customer's answer to a slot offer."""

    entry_id: str = Field(..., description="Waitlist entry that was notified")
    accept: bool = Field(..., description="Whether the customer takes the slot")


class WaitlistEntry(BaseModel):
    """Waitlist entry response schema."""

    id: str = Field(..., description="Unique waitlist entry ID")
    charter_id: str = Field(..., description="Associated charter ID")
    date: dt.date = Field(..., description="Requested date")
    customer_ref: str = Field(..., description="Customer reference")
    party_size: int = Field(..., description="Number of guests")
    status: WaitlistStatus = Field(..., description="Entry status")
    joined_at: dt.datetime = Field(..., description="Queue position timestamp (ISO 8601)")
    notified_at: dt.datetime | None = Field(None, description="When the slot was offered (ISO 8601)")
    response_deadline: dt.datetime | None = Field(None, description="Offer deadline (ISO 8601)")


class RespondWaitlistResponse(BaseModel):
    """Outcome of a waitlist response."""

    entry: WaitlistEntry
    booking: Booking | None = Field(None, description="Booking started for an accepted offer")
