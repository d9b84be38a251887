"""Calendar entry model: the single source of truth for slot state."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class SlotStatus(str, Enum):
    """Calendar slot status enumeration."""
    AVAILABLE = "available"
    PENDING_HOLD = "pending_hold"
    BOOKED = "booked"
    BLOCKED = "blocked"


class CalendarEntry(Base):
    """
    Per-captain, per-date slot state.

    A missing row is an available slot. Rows are only mutated through
    conditional updates in CalendarStore.
    """
    
    __tablename__ = "calendar_entries"
    
    captain_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    slot_date: Mapped[date] = mapped_column(Date, primary_key=True)
    
    status: Mapped[SlotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SlotStatus.AVAILABLE
    )
    holder_booking_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    hold_expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    block_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    
    __table_args__ = (
        CheckConstraint(
            "status in ('available', 'pending_hold', 'booked', 'blocked')",
            name="ck_calendar_status_valid"
        ),
        CheckConstraint(
            "(status = 'pending_hold') = (hold_expires_at IS NOT NULL)",
            name="ck_calendar_hold_expiry_only_when_pending"
        ),
        CheckConstraint(
            "(status in ('pending_hold', 'booked')) = (holder_booking_id IS NOT NULL)",
            name="ck_calendar_holder_only_when_held"
        ),
        Index("ix_calendar_pending_expiry", "status", "hold_expires_at"),
    )
    
    def __repr__(self) -> str:
        return (
            f"<CalendarEntry(captain_id='{self.captain_id}', date={self.slot_date}, "
            f"status={self.status}, holder={self.holder_booking_id})>"
        )
