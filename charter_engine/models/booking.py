"""Booking model definition."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReservationStage(str, Enum):
    """Position of a booking attempt in the reservation state machine."""
    SELECTING = "selecting"
    HOLDING = "holding"
    PRICING = "pricing"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TripDuration(str, Enum):
    """Charter trip lengths; each has its own list price."""
    HALF_DAY = "half_day"
    FULL_DAY = "full_day"


class Booking(Base):
    """A customer's booking attempt for one captain on one date."""
    
    __tablename__ = "bookings"
    
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    
    charter_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("charters.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    # Denormalized from the charter: the calendar is keyed by captain
    captain_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    duration: Mapped[TripDuration] = mapped_column(String(20), nullable=False, default=TripDuration.HALF_DAY)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    stage: Mapped[ReservationStage] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStage.PRICING,
        index=True
    )
    
    # Pricing in minor units
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_price: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    referral_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    
    # Payment handoff
    payment_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    checkout_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    handoff_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    
    hold_expires_at: Mapped[datetime] = mapped_column(nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)
    
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_booking_base_price_non_negative"),
        CheckConstraint("discount >= 0", name="ck_booking_discount_non_negative"),
        CheckConstraint("final_price >= 0", name="ck_booking_final_price_non_negative"),
        CheckConstraint("final_price <= base_price", name="ck_booking_final_price_lte_base"),
        CheckConstraint("party_size > 0", name="ck_booking_party_size_positive"),
        CheckConstraint("length(customer_ref) > 0", name="ck_booking_customer_ref_not_empty"),
        Index("ix_bookings_slot", "captain_id", "booking_date"),
        # At most one confirmed booking per slot
        Index(
            "uq_bookings_confirmed_slot",
            "captain_id",
            "booking_date",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )
    
    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, captain_id='{self.captain_id}', date={self.booking_date}, "
            f"status={self.status}, stage={self.stage})>"
        )
