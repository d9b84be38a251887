"""Calendar store: sole owner of per-captain, per-date slot state."""

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.database import insert_ignoring_conflicts
from ..core.exceptions import ConflictError
from ..core.observability import metrics_collector
from ..models.calendar_entry import CalendarEntry, SlotStatus

logger = logging.getLogger(__name__)

ReleasedSlot = Tuple[str, date, Optional[UUID]]


class ClaimResult(str, Enum):
    """Outcome of a binding claim."""
    CLAIMED = "claimed"
    CONFLICT = "conflict"


class CalendarStore:
    """
    Owns CalendarEntry rows.

    Every state change is a single conditional UPDATE so that concurrent
    writers resolve by row count instead of by read-then-write.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, captain_id: str, slot_date: date) -> CalendarEntry:
        """Return the entry for a slot, or a transient available entry if none is stored."""
        stmt = select(CalendarEntry).where(
            CalendarEntry.captain_id == captain_id,
            CalendarEntry.slot_date == slot_date
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        entry = result.scalar_one_or_none()
        if entry is None:
            return CalendarEntry(
                captain_id=captain_id,
                slot_date=slot_date,
                status=SlotStatus.AVAILABLE
            )
        return entry

    async def list_range(self, captain_id: str, date_from: date, date_to: date) -> List[CalendarEntry]:
        """Entries for every date in [date_from, date_to], gaps filled as available."""
        stmt = (
            select(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date >= date_from,
                CalendarEntry.slot_date <= date_to
            )
            .order_by(CalendarEntry.slot_date)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        stored = {entry.slot_date: entry for entry in result.scalars()}

        entries = []
        day = date_from
        while day <= date_to:
            entries.append(stored.get(day) or CalendarEntry(
                captain_id=captain_id,
                slot_date=day,
                status=SlotStatus.AVAILABLE
            ))
            day += timedelta(days=1)
        return entries

    async def _ensure_row(self, captain_id: str, slot_date: date, now: datetime) -> None:
        stmt = insert_ignoring_conflicts(
            self.db,
            CalendarEntry.__table__,
            ["captain_id", "slot_date"],
            captain_id=captain_id,
            slot_date=slot_date,
            status=SlotStatus.AVAILABLE.value,
            updated_at=now,
        )
        await self.db.execute(stmt)

    async def try_claim(
        self,
        captain_id: str,
        slot_date: date,
        booking_id: UUID,
        ttl_seconds: int,
        now: Optional[datetime] = None,
    ) -> ClaimResult:
        """
        Atomically move an available slot to pending_hold for booking_id.

        Commits immediately. Never blocks and never retries: the row count of
        the conditional update is the whole decision.
        """
        now = now or utcnow()
        await self._ensure_row(captain_id, slot_date, now)

        stmt = (
            update(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date == slot_date,
                CalendarEntry.status == SlotStatus.AVAILABLE.value
            )
            .values(
                status=SlotStatus.PENDING_HOLD.value,
                holder_booking_id=booking_id,
                hold_expires_at=now + timedelta(seconds=ttl_seconds),
                block_reason=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        outcome = ClaimResult.CLAIMED if result.rowcount == 1 else ClaimResult.CONFLICT
        metrics_collector.record_claim(outcome.value)

        logger.info(
            "Slot claim attempted",
            extra={
                "captain_id": captain_id,
                "date": slot_date.isoformat(),
                "booking_id": str(booking_id),
                "outcome": outcome.value,
            }
        )
        return outcome

    async def release(
        self,
        captain_id: str,
        slot_date: date,
        booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Return a held or booked slot to available.

        When booking_id is given only that holder's slot is released. Blocked
        slots are never touched. Returns True if a row changed.
        """
        now = now or utcnow()
        conditions = [
            CalendarEntry.captain_id == captain_id,
            CalendarEntry.slot_date == slot_date,
            CalendarEntry.status.in_([SlotStatus.PENDING_HOLD.value, SlotStatus.BOOKED.value]),
        ]
        if booking_id is not None:
            conditions.append(CalendarEntry.holder_booking_id == booking_id)

        stmt = (
            update(CalendarEntry)
            .where(*conditions)
            .values(
                status=SlotStatus.AVAILABLE.value,
                holder_booking_id=None,
                hold_expires_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        released = result.rowcount == 1
        logger.info(
            "Slot release attempted",
            extra={
                "captain_id": captain_id,
                "date": slot_date.isoformat(),
                "booking_id": str(booking_id) if booking_id else None,
                "released": released,
            }
        )
        return released

    async def finalize(
        self,
        captain_id: str,
        slot_date: date,
        booking_id: UUID,
        now: Optional[datetime] = None,
    ) -> bool:
        """Move booking_id's pending hold to booked. False if the hold is gone."""
        now = now or utcnow()
        stmt = (
            update(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date == slot_date,
                CalendarEntry.status == SlotStatus.PENDING_HOLD.value,
                CalendarEntry.holder_booking_id == booking_id
            )
            .values(
                status=SlotStatus.BOOKED.value,
                hold_expires_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def expire_stale_holds(self, now: Optional[datetime] = None) -> List[ReleasedSlot]:
        """
        Revert every pending_hold past its expiry to available.

        Returns the released (captain_id, date, holder_booking_id) triples.
        Each row is reverted with its own conditional update, so a hold that
        was finalized in the meantime is left alone.
        """
        now = now or utcnow()
        stmt = select(
            CalendarEntry.captain_id,
            CalendarEntry.slot_date,
            CalendarEntry.holder_booking_id
        ).where(
            CalendarEntry.status == SlotStatus.PENDING_HOLD.value,
            CalendarEntry.hold_expires_at <= now
        )
        result = await self.db.execute(stmt)
        candidates = list(result.all())

        released: List[ReleasedSlot] = []
        for captain_id, slot_date, holder in candidates:
            revert = (
                update(CalendarEntry)
                .where(
                    CalendarEntry.captain_id == captain_id,
                    CalendarEntry.slot_date == slot_date,
                    CalendarEntry.status == SlotStatus.PENDING_HOLD.value,
                    CalendarEntry.holder_booking_id == holder,
                    CalendarEntry.hold_expires_at <= now
                )
                .values(
                    status=SlotStatus.AVAILABLE.value,
                    holder_booking_id=None,
                    hold_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            outcome = await self.db.execute(revert)
            if outcome.rowcount == 1:
                released.append((captain_id, slot_date, holder))
        await self.db.commit()

        if released:
            metrics_collector.record_holds_expired(len(released))
            logger.info(
                "Expired stale holds",
                extra={
                    "released_count": len(released),
                    "slots": [f"{c}/{d.isoformat()}" for c, d, _ in released],
                }
            )
        return released

    async def block(
        self,
        captain_id: str,
        slot_date: date,
        reason: str,
        now: Optional[datetime] = None,
    ) -> CalendarEntry:
        """Operator block of an available date."""
        now = now or utcnow()
        await self._ensure_row(captain_id, slot_date, now)

        stmt = (
            update(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date == slot_date,
                CalendarEntry.status == SlotStatus.AVAILABLE.value
            )
            .values(status=SlotStatus.BLOCKED.value, block_reason=reason, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        entry = await self._refresh(captain_id, slot_date)
        if result.rowcount != 1 and entry.status != SlotStatus.BLOCKED:
            raise ConflictError(
                detail=f"Date {slot_date.isoformat()} for captain {captain_id} is {SlotStatus(entry.status).value} and cannot be blocked",
                code="SLOT_NOT_BLOCKABLE",
                conflicting_resource={
                    "captain_id": captain_id,
                    "date": slot_date.isoformat(),
                    "status": SlotStatus(entry.status).value,
                }
            )

        logger.info(
            "Calendar date blocked",
            extra={"captain_id": captain_id, "date": slot_date.isoformat(), "reason": reason}
        )
        return entry

    async def unblock(
        self,
        captain_id: str,
        slot_date: date,
        now: Optional[datetime] = None,
    ) -> bool:
        """Return a blocked date to available. True if the date was blocked."""
        now = now or utcnow()
        stmt = (
            update(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date == slot_date,
                CalendarEntry.status == SlotStatus.BLOCKED.value
            )
            .values(status=SlotStatus.AVAILABLE.value, block_reason=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        unblocked = result.rowcount == 1
        logger.info(
            "Calendar date unblock attempted",
            extra={"captain_id": captain_id, "date": slot_date.isoformat(), "unblocked": unblocked}
        )
        return unblocked

    async def _refresh(self, captain_id: str, slot_date: date) -> CalendarEntry:
        # Conditional updates bypass the identity map; reload from the database
        stmt = (
            select(CalendarEntry)
            .where(
                CalendarEntry.captain_id == captain_id,
                CalendarEntry.slot_date == slot_date
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()
