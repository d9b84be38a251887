"""Referral code and redemption models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class ReferralCode(Base):
    """
    A referral code and its redemption policy.

    Single-use codes (the default) may be redeemed once per customer.
    ``max_redemptions`` optionally caps uses across all customers;
    ``times_redeemed`` counts reserved and redeemed uses alike.
    """

    __tablename__ = "referral_codes"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    multi_use: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_redemptions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    times_redeemed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("discount_amount > 0", name="ck_referral_discount_positive"),
        CheckConstraint("times_redeemed >= 0", name="ck_referral_times_redeemed_non_negative"),
        CheckConstraint(
            "max_redemptions IS NULL OR times_redeemed <= max_redemptions",
            name="ck_referral_within_cap"
        ),
    )

    def __repr__(self) -> str:
        return f"<ReferralCode(code='{self.code}', discount={self.discount_amount}, redeemed={self.times_redeemed})>"


class RedemptionState(str, Enum):
    """A code is reserved while its booking awaits payment and redeemed once it confirms."""
    RESERVED = "reserved"
    REDEEMED = "redeemed"


class ReferralRedemption(Base):
    """
    A referral code applied to one booking.

    The row is written when the booking is priced, in the same transaction
    as the booking itself, so a single-use code can be on at most one live
    booking per customer. Expiry or cancellation before confirmation
    deletes the reserved row and gives the use back.
    """

    __tablename__ = "referral_redemptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    referral_code: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("referral_codes.code", ondelete="CASCADE"),
        nullable=False
    )
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    # True when the code was single-use at reservation time
    exclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    state: Mapped[RedemptionState] = mapped_column(
        String(20),
        nullable=False,
        default=RedemptionState.RESERVED
    )
    reserved_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_referral_redemptions_code_customer", "referral_code", "customer_ref"),
        Index(
            "uq_referral_single_use_per_customer",
            "referral_code",
            "customer_ref",
            unique=True,
            postgresql_where=text("exclusive"),
            sqlite_where=text("exclusive = 1"),
        ),
        CheckConstraint("state IN ('reserved', 'redeemed')", name="ck_referral_redemption_state"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReferralRedemption(code='{self.referral_code}', customer_ref='{self.customer_ref}', "
            f"booking_id={self.booking_id}, state={self.state})>"
        )
