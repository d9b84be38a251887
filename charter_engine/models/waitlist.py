"""Waitlist model definition."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class WaitlistStatus(str, Enum):
    """Waitlist entry status enumeration."""
    WAITING = "waiting"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    CONVERTED = "converted"


class WaitlistEntry(Base):
    """A customer queued for a charter date that is not currently available."""

    __tablename__ = "waitlist_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    charter_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("charters.id", ondelete="CASCADE"),
        nullable=False
    )
    # Copied from the charter; offers are made per captain calendar date
    captain_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_date: Mapped[date] = mapped_column(Date, nullable=False)

    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    status: Mapped[WaitlistStatus] = mapped_column(
        String(20),
        nullable=False,
        default=WaitlistStatus.WAITING
    )

    # FIFO order
    joined_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    notified_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    response_deadline: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    booking_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        CheckConstraint("length(customer_ref) > 0", name="ck_waitlist_customer_ref_not_empty"),
        CheckConstraint("party_size > 0", name="ck_waitlist_party_size_positive"),
        Index("ix_waitlist_slot_queue", "captain_id", "requested_date", "status", "joined_at"),
        # One open entry per customer per slot
        Index(
            "uq_waitlist_open_customer",
            "charter_id",
            "requested_date",
            "customer_ref",
            unique=True,
            postgresql_where=text("status in ('waiting', 'notified')"),
            sqlite_where=text("status in ('waiting', 'notified')"),
        ),
        # Never two outstanding offers for the same captain date, whichever charter they name
        Index(
            "uq_waitlist_single_offer",
            "captain_id",
            "requested_date",
            unique=True,
            postgresql_where=text("status = 'notified'"),
            sqlite_where=text("status = 'notified'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, charter_id={self.charter_id}, captain_id={self.captain_id}, "
            f"date={self.requested_date}, customer_ref='{self.customer_ref}', "
            f"status={self.status}, joined_at={self.joined_at})>"
        )
