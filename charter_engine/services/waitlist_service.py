"""Waitlist coordinator: FIFO promotion of queued customers onto freed dates."""

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher, NotificationKind
from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ConflictError, NotFoundError, SlotConflictError
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.calendar_entry import SlotStatus
from ..models.waitlist import WaitlistEntry, WaitlistStatus
from ..schemas.waitlist import JoinWaitlistRequest
from .calendar_store import CalendarStore
from .charter_service import CharterService, parse_uuid

if TYPE_CHECKING:
    from .reservation_service import ReservationService

logger = logging.getLogger(__name__)

OPEN_STATUSES = [WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value]


class OfferExpiredError(ConflictError):
    """The customer answered after the response window closed."""

    def __init__(self, entry_id: str, deadline: datetime):
        super().__init__(
            "This offer has expired. The date was offered to the next customer in line.",
            code="OFFER_EXPIRED",
            entry_id=entry_id,
            response_deadline=deadline.isoformat() + "Z",
        )


class WaitlistService:
    """
    Owns WaitlistEntry rows.

    At most one entry is ``notified`` per (charter, date); the partial unique
    index ``uq_waitlist_single_offer`` backs that up when promoters race.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher,
        reservations: Optional["ReservationService"] = None,
        response_window_seconds: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.reservations = reservations
        self.response_window_seconds = response_window_seconds or settings.waitlist_response_window_seconds
        self.calendar = CalendarStore(db)
        self.charters = CharterService(db)

    async def join(self, request: JoinWaitlistRequest, now: Optional[datetime] = None) -> WaitlistEntry:
        """
        Join a charter date's waitlist (idempotent per open entry of the customer).

        Raises:
            NotFoundError: If charter not found
        """
        now = now or utcnow()
        charter = await self.charters.get_charter_by_id_or_raise(parse_uuid(request.charter_id, "charter_id"))

        existing_entry = await self.get_open_entry(charter.id, request.date, request.customer.customer_ref)
        if existing_entry:
            logger.info(
                "Customer already on waitlist - returning existing entry",
                extra={
                    "waitlist_entry_id": str(existing_entry.id),
                    "charter_id": str(charter.id),
                    "date": request.date.isoformat(),
                    "customer_ref": request.customer.customer_ref,
                }
            )
            return existing_entry

        entry = WaitlistEntry(
            charter_id=charter.id,
            captain_id=charter.captain_id,
            requested_date=request.date,
            customer_ref=request.customer.customer_ref,
            party_size=request.party_size,
            contact_email=request.customer.email,
            contact_phone=request.customer.phone,
            status=WaitlistStatus.WAITING.value,
            joined_at=now,
        )

        try:
            self.db.add(entry)
            await self.db.commit()
        except IntegrityError:
            # Race condition - another request created the entry
            await self.db.rollback()
            existing_entry = await self.get_open_entry(charter.id, request.date, request.customer.customer_ref)
            if existing_entry is None:
                raise
            return existing_entry

        logger.info(
            "Customer joined waitlist",
            extra={
                "waitlist_entry_id": str(entry.id),
                "charter_id": str(charter.id),
                "date": request.date.isoformat(),
                "customer_ref": entry.customer_ref,
            }
        )

        # The date may have freed between the customer's check and the join
        await self.on_slot_freed(charter.id, request.date, now=now)
        return await self.get_entry_or_raise(entry.id)

    async def on_slot_freed(
        self,
        charter_id: UUID,
        slot_date: date,
        now: Optional[datetime] = None,
    ) -> Optional[WaitlistEntry]:
        """Offer a freed date of this charter to the next customer in line."""
        charter = await self.charters.get_charter_by_id(charter_id)
        if charter is None:
            return None
        return await self.on_captain_slot_freed(charter.captain_id, slot_date, now=now)

    async def on_captain_slot_freed(
        self,
        captain_id: str,
        slot_date: date,
        now: Optional[datetime] = None,
    ) -> Optional[WaitlistEntry]:
        """
        Offer a freed captain date to the oldest waiting entry across the captain's charters.

        Does nothing while the date is not available or while another offer
        for it is outstanding. Returns the notified entry, if any.
        """
        now = now or utcnow()

        slot = await self.calendar.get(captain_id, slot_date)
        if slot.status != SlotStatus.AVAILABLE.value:
            return None

        outstanding = await self.db.execute(
            select(WaitlistEntry.id).where(
                WaitlistEntry.captain_id == captain_id,
                WaitlistEntry.requested_date == slot_date,
                WaitlistEntry.status == WaitlistStatus.NOTIFIED.value
            ).limit(1)
        )
        if outstanding.scalar_one_or_none() is not None:
            return None

        # Strict FIFO; id breaks ties between identical join times
        result = await self.db.execute(
            select(WaitlistEntry.id)
            .where(
                WaitlistEntry.captain_id == captain_id,
                WaitlistEntry.requested_date == slot_date,
                WaitlistEntry.status == WaitlistStatus.WAITING.value
            )
            .order_by(WaitlistEntry.joined_at, WaitlistEntry.id)
            .limit(1)
        )
        next_id = result.scalar_one_or_none()
        if next_id is None:
            return None

        deadline = now + timedelta(seconds=self.response_window_seconds)
        try:
            promoted = await self.db.execute(
                update(WaitlistEntry)
                .where(
                    WaitlistEntry.id == next_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING.value
                )
                .values(
                    status=WaitlistStatus.NOTIFIED.value,
                    notified_at=now,
                    response_deadline=deadline,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except IntegrityError:
            # Another promoter, possibly for a sibling charter, won the single-offer index
            await self.db.rollback()
            logger.info(
                "Waitlist promotion lost race",
                extra={"captain_id": captain_id, "date": slot_date.isoformat()}
            )
            return None

        if promoted.rowcount != 1:
            return None

        entry = await self.get_entry_or_raise(next_id)
        metrics_collector.record_waitlist_promotion()
        logger.info(
            "Waitlist entry notified",
            extra={
                "waitlist_entry_id": str(entry.id),
                "charter_id": str(entry.charter_id),
                "date": slot_date.isoformat(),
                "customer_ref": entry.customer_ref,
                "response_deadline": deadline.isoformat(),
            }
        )

        await self.notifier.send(
            NotificationKind.WAITLIST_OFFER,
            entry.contact_email,
            {
                "entry_id": str(entry.id),
                "charter_id": str(entry.charter_id),
                "date": slot_date.isoformat(),
                "customer_ref": entry.customer_ref,
                "response_deadline": deadline.isoformat() + "Z",
            },
        )
        return entry

    async def respond(
        self,
        entry_id: str,
        accept: bool,
        now: Optional[datetime] = None,
    ) -> Tuple[WaitlistEntry, Optional[Booking]]:
        """
        Apply a notified customer's answer.

        Declining expires the entry and offers the date to the next customer.
        Accepting starts a fresh booking attempt for the customer.

        Raises:
            NotFoundError: If the entry does not exist
            ConflictError: If the entry is not awaiting a response
            OfferExpiredError: If the response window already closed
            SlotConflictError: If a direct booking took the date first; the
                entry goes back to waiting with its original position
        """
        now = now or utcnow()
        entry = await self.get_entry_or_raise(parse_uuid(entry_id, "entry_id"))

        if entry.status != WaitlistStatus.NOTIFIED.value:
            raise ConflictError(
                detail=f"Waitlist entry {entry.id} is {entry.status} and not awaiting a response",
                code="OFFER_NOT_PENDING",
                conflicting_resource={"entry_id": str(entry.id), "status": entry.status}
            )

        if entry.response_deadline is not None and entry.response_deadline < now:
            deadline = entry.response_deadline
            await self._resolve(entry.id, WaitlistStatus.EXPIRED, now)
            await self.on_slot_freed(entry.charter_id, entry.requested_date, now=now)
            raise OfferExpiredError(str(entry.id), deadline)

        if not accept:
            await self._resolve(entry.id, WaitlistStatus.EXPIRED, now)
            logger.info(
                "Waitlist offer declined",
                extra={"waitlist_entry_id": str(entry.id), "customer_ref": entry.customer_ref}
            )
            await self.on_slot_freed(entry.charter_id, entry.requested_date, now=now)
            return await self.get_entry_or_raise(entry.id), None

        reservations = self._reservations()
        try:
            booking = await reservations.begin_from_waitlist(entry, now=now)
        except SlotConflictError:
            await self.db.execute(
                update(WaitlistEntry)
                .where(
                    WaitlistEntry.id == entry.id,
                    WaitlistEntry.status == WaitlistStatus.NOTIFIED.value
                )
                .values(
                    status=WaitlistStatus.WAITING.value,
                    notified_at=None,
                    response_deadline=None,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            logger.info(
                "Waitlist acceptance lost the slot to a direct booking",
                extra={"waitlist_entry_id": str(entry.id), "customer_ref": entry.customer_ref}
            )
            await self.on_slot_freed(entry.charter_id, entry.requested_date, now=now)
            raise

        await self._resolve(entry.id, WaitlistStatus.CONVERTED, now, booking_id=booking.id)
        logger.info(
            "Waitlist entry converted",
            extra={
                "waitlist_entry_id": str(entry.id),
                "booking_id": str(booking.id),
                "customer_ref": entry.customer_ref,
            }
        )
        return await self.get_entry_or_raise(entry.id), booking

    async def expire_unanswered(self, now: Optional[datetime] = None) -> int:
        """Expire offers past their response deadline and promote the next entries."""
        now = now or utcnow()
        result = await self.db.execute(
            select(WaitlistEntry.id, WaitlistEntry.captain_id, WaitlistEntry.requested_date).where(
                WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
                WaitlistEntry.response_deadline < now
            )
        )
        lapsed = list(result.all())

        expired = 0
        for entry_id, captain_id, requested_date in lapsed:
            if await self._resolve(entry_id, WaitlistStatus.EXPIRED, now):
                expired += 1
                await self.on_captain_slot_freed(captain_id, requested_date, now=now)

        waiting = await self.db.execute(
            select(func.count(WaitlistEntry.id)).where(WaitlistEntry.status == WaitlistStatus.WAITING.value)
        )
        metrics_collector.set_waitlist_waiting(waiting.scalar() or 0)

        if expired:
            logger.info("Expired unanswered waitlist offers", extra={"expired_count": expired})
        return expired

    async def _resolve(
        self,
        entry_id: UUID,
        status: WaitlistStatus,
        now: datetime,
        booking_id: Optional[UUID] = None,
    ) -> bool:
        values = {"status": status.value, "resolved_at": now}
        if booking_id is not None:
            values["booking_id"] = booking_id
        result = await self.db.execute(
            update(WaitlistEntry)
            .where(
                WaitlistEntry.id == entry_id,
                WaitlistEntry.status == WaitlistStatus.NOTIFIED.value
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    def _reservations(self) -> "ReservationService":
        if self.reservations is None:
            raise RuntimeError("WaitlistService needs a ReservationService to convert offers")
        return self.reservations

    async def get_entry(self, entry_id: UUID) -> Optional[WaitlistEntry]:
        """Get waitlist entry by ID."""
        stmt = select(WaitlistEntry).where(WaitlistEntry.id == entry_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_entry_or_raise(self, entry_id: UUID) -> WaitlistEntry:
        entry = await self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(resource_type="waitlist entry", resource_id=str(entry_id))
        return entry

    async def get_open_entry(
        self, charter_id: UUID, requested_date: date, customer_ref: str
    ) -> Optional[WaitlistEntry]:
        """The customer's waiting or notified entry for a charter date."""
        stmt = select(WaitlistEntry).where(
            WaitlistEntry.charter_id == charter_id,
            WaitlistEntry.requested_date == requested_date,
            WaitlistEntry.customer_ref == customer_ref,
            WaitlistEntry.status.in_(OPEN_STATUSES)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_slot(self, charter_id: UUID, requested_date: date) -> List[WaitlistEntry]:
        """All entries for a charter date in queue order."""
        stmt = (
            select(WaitlistEntry)
            .where(
                WaitlistEntry.charter_id == charter_id,
                WaitlistEntry.requested_date == requested_date
            )
            .order_by(WaitlistEntry.joined_at, WaitlistEntry.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())
