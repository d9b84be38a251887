"""Advisory availability checks and the binding claim in front of the calendar."""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import SlotConflictError
from ..models.calendar_entry import SlotStatus
from .calendar_store import CalendarStore, ClaimResult

logger = logging.getLogger(__name__)


class Availability(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class ConflictGuard:
    """
    Two-call pattern: ``check_availability`` when a date is picked (may be
    stale), ``claim`` immediately before payment handoff (binding).
    """

    def __init__(self, db: AsyncSession, hold_ttl_seconds: Optional[int] = None):
        self.calendar = CalendarStore(db)
        self.hold_ttl_seconds = hold_ttl_seconds or settings.hold_ttl_seconds

    async def check_availability(self, captain_id: str, slot_date: date) -> Availability:
        entry = await self.calendar.get(captain_id, slot_date)
        if entry.status == SlotStatus.AVAILABLE:
            return Availability.AVAILABLE
        return Availability.UNAVAILABLE

    async def claim(
        self,
        captain_id: str,
        slot_date: date,
        booking_id: UUID,
        now: Optional[datetime] = None,
    ) -> ClaimResult:
        return await self.calendar.try_claim(
            captain_id, slot_date, booking_id, self.hold_ttl_seconds, now=now
        )

    async def claim_or_raise(
        self,
        captain_id: str,
        slot_date: date,
        booking_id: UUID,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Binding claim that surfaces a conflict as SlotConflictError.

        Raises:
            SlotConflictError: If the slot was not available at claim time
        """
        outcome = await self.claim(captain_id, slot_date, booking_id, now=now)
        if outcome == ClaimResult.CONFLICT:
            entry = await self.calendar.get(captain_id, slot_date)
            logger.info(
                "Slot conflict surfaced to caller",
                extra={
                    "captain_id": captain_id,
                    "date": slot_date.isoformat(),
                    "booking_id": str(booking_id),
                    "current_status": SlotStatus(entry.status).value,
                }
            )
            raise SlotConflictError(captain_id, slot_date, status=SlotStatus(entry.status).value)
