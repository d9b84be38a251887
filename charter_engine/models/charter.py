"""Charter model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class Charter(Base):
    """A bookable charter offering run by one captain."""
    
    __tablename__ = "charters"
    
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    
    # The calendar is keyed by captain, so every charter maps to exactly one
    captain_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    # Price list in minor units
    price_half_day: Mapped[int] = mapped_column(Integer, nullable=False)
    price_full_day: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    price_updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)
    
    __table_args__ = (
        CheckConstraint("price_half_day >= 0", name="ck_charter_price_half_day_non_negative"),
        CheckConstraint("price_full_day >= 0", name="ck_charter_price_full_day_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_charter_currency_length"),
        CheckConstraint("length(captain_id) > 0", name="ck_charter_captain_id_not_empty"),
    )
    
    def price_for(self, duration: str) -> int:
        """Current list price for a trip duration ("half_day" or "full_day")."""
        return self.price_full_day if duration == "full_day" else self.price_half_day
    
    def __repr__(self) -> str:
        return f"<Charter(id={self.id}, captain_id='{self.captain_id}', name='{self.name}')>"
