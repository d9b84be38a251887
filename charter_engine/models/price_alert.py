"""Price alert model definition."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class PriceAlertStatus(str, Enum):
    """Price alert status enumeration."""
    ACTIVE = "active"
    TRIGGERED = "triggered"
    CANCELLED = "cancelled"


class PriceAlert(Base):
    """
    A customer's request to hear when a charter's price drops to a target.

    ``triggered`` alerts re-arm to ``active`` only after the price climbs
    back above the target.
    """

    __tablename__ = "price_alerts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    charter_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("charters.id", ondelete="CASCADE"),
        nullable=False
    )
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    duration: Mapped[str] = mapped_column(String(20), nullable=False, default="half_day")

    target_price: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_creation: Mapped[int] = mapped_column(Integer, nullable=False)
    last_seen_price: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[PriceAlertStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PriceAlertStatus.ACTIVE
    )
    trigger_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("target_price >= 0", name="ck_price_alert_target_non_negative"),
        CheckConstraint("target_price < price_at_creation", name="ck_price_alert_target_below_creation"),
        CheckConstraint("length(customer_ref) > 0", name="ck_price_alert_customer_ref_not_empty"),
        Index("ix_price_alerts_charter_status", "charter_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<PriceAlert(id={self.id}, charter_id={self.charter_id}, "
            f"target={self.target_price}, status={self.status})>"
        )
