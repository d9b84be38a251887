"""Reservation coordinator: drives a booking attempt from date selection to a terminal state."""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher, NotificationKind
from ..clients.payments import PaymentGateway
from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PaymentTimeoutError,
    ReferralError,
    UpstreamUnavailableError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, ReservationStage, TripDuration
from ..models.calendar_entry import SlotStatus
from ..models.charter import Charter
from ..models.waitlist import WaitlistEntry
from ..schemas.booking import CreateBookingRequest, PaymentOutcome
from .calendar_store import CalendarStore
from .charter_service import CharterService, parse_uuid
from .conflict_guard import ConflictGuard
from .referral_service import ReferralService
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    ReservationStage.SELECTING: {ReservationStage.HOLDING},
    ReservationStage.HOLDING: {
        ReservationStage.PRICING,
        ReservationStage.SELECTING,
        ReservationStage.CANCELLED,
        ReservationStage.EXPIRED,
    },
    ReservationStage.PRICING: {
        ReservationStage.AWAITING_PAYMENT,
        ReservationStage.CANCELLED,
        ReservationStage.EXPIRED,
    },
    ReservationStage.AWAITING_PAYMENT: {
        ReservationStage.CONFIRMED,
        ReservationStage.CANCELLED,
        ReservationStage.EXPIRED,
    },
    ReservationStage.CONFIRMED: {ReservationStage.CANCELLED},
    ReservationStage.EXPIRED: set(),
    ReservationStage.CANCELLED: set(),
}

TERMINAL_STATUS = {
    ReservationStage.CONFIRMED: BookingStatus.CONFIRMED,
    ReservationStage.EXPIRED: BookingStatus.EXPIRED,
    ReservationStage.CANCELLED: BookingStatus.CANCELLED,
}


class ReservationService:
    """
    Only writer of Booking.status.

    Attempts move SELECTING -> HOLDING -> PRICING -> AWAITING_PAYMENT and end
    in CONFIRMED, EXPIRED or CANCELLED. Every release of a slot is followed
    by waitlist promotion once the release is committed.
    """

    def __init__(
        self,
        db: AsyncSession,
        payments: PaymentGateway,
        notifier: NotificationDispatcher,
        hold_ttl_seconds: Optional[int] = None,
        max_handoff_attempts: Optional[int] = None,
    ):
        self.db = db
        self.payments = payments
        self.notifier = notifier
        self.hold_ttl_seconds = hold_ttl_seconds or settings.hold_ttl_seconds
        self.max_handoff_attempts = max_handoff_attempts or settings.payment_handoff_max_attempts
        self.calendar = CalendarStore(db)
        self.guard = ConflictGuard(db, hold_ttl_seconds=self.hold_ttl_seconds)
        self.referrals = ReferralService(db)
        self.charters = CharterService(db)
        self.waitlist = WaitlistService(db, notifier, reservations=self)

    # State machine

    def _transition(self, booking: Booking, target: ReservationStage) -> None:
        current = ReservationStage(booking.stage)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(str(booking.id), current.value, target.value)

        booking.stage = target.value
        if target in TERMINAL_STATUS:
            booking.status = TERMINAL_STATUS[target].value

        logger.info(
            "Booking stage changed",
            extra={
                "booking_id": str(booking.id),
                "from_stage": current.value,
                "to_stage": target.value,
            }
        )

    # Entry points

    async def create_booking(self, request: CreateBookingRequest, now: Optional[datetime] = None) -> Booking:
        """
        Claim the slot, price the booking and hand it off to the payment processor.

        Raises:
            NotFoundError: If the charter does not exist
            ValidationError: If the date is in the past
            SlotConflictError: If the slot is not available at claim time
            ReferralError: If the referral code is rejected (the hold is released)
            UpstreamUnavailableError: If the payment processor cannot be reached;
                the booking is kept and the handoff retried in the background
        """
        now = now or utcnow()
        charter = await self.charters.get_charter_by_id_or_raise(parse_uuid(request.charter_id, "charter_id"))

        if request.date < now.date():
            raise ValidationError(detail="Booking date must not be in the past", field="date")

        booking = await self._start_attempt(
            charter,
            request.date,
            request.customer_ref,
            request.duration,
            request.party_size,
            request.referral_code,
            now,
        )
        return await self._hand_off(booking, now, raise_on_unavailable=True)

    async def begin_from_waitlist(self, entry: WaitlistEntry, now: Optional[datetime] = None) -> Booking:
        """
        Fresh attempt for a promoted waitlist customer, entering at HOLDING.

        An unreachable payment processor does not fail the attempt; the
        handoff worker retries it.

        Raises:
            SlotConflictError: If a direct booking claimed the slot first
        """
        now = now or utcnow()
        charter = await self.charters.get_charter_by_id_or_raise(entry.charter_id)
        booking = await self._start_attempt(
            charter,
            entry.requested_date,
            entry.customer_ref,
            TripDuration.HALF_DAY,
            entry.party_size,
            None,
            now,
        )
        return await self._hand_off(booking, now, raise_on_unavailable=False)

    async def _start_attempt(
        self,
        charter: Charter,
        slot_date: date,
        customer_ref: str,
        duration: TripDuration,
        party_size: int,
        referral_code: Optional[str],
        now: datetime,
    ) -> Booking:
        booking_id = uuid4()
        captain_id = charter.captain_id

        # SELECTING -> HOLDING; a conflict leaves the attempt in SELECTING
        await self.guard.claim_or_raise(captain_id, slot_date, booking_id, now=now)

        # HOLDING -> PRICING
        base_price = charter.price_for(TripDuration(duration).value)
        try:
            quote = await self.referrals.price(base_price, referral_code, customer_ref, now=now)
            booking = Booking(
                id=booking_id,
                charter_id=charter.id,
                captain_id=captain_id,
                customer_ref=customer_ref,
                booking_date=slot_date,
                duration=TripDuration(duration).value,
                party_size=party_size,
                status=BookingStatus.PENDING.value,
                stage=ReservationStage.PRICING.value,
                base_price=quote.base_price,
                discount=quote.discount,
                final_price=quote.final_price,
                currency=charter.currency,
                referral_code=quote.referral_code,
                handoff_attempts=0,
                hold_expires_at=now + timedelta(seconds=self.hold_ttl_seconds),
            )
            self.db.add(booking)
            if quote.referral_code:
                # The booking and its referral reservation commit together or not at all
                await self.db.flush()
                await self.referrals.reserve(booking, now=now)
            await self.db.commit()
        except ReferralError:
            await self.db.rollback()
            await self.calendar.release(captain_id, slot_date, booking_id, now=now)
            raise

        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "charter_id": str(booking.charter_id),
                "captain_id": captain_id,
                "date": slot_date.isoformat(),
                "customer_ref": customer_ref,
                "final_price": quote.final_price,
                "referral_code": quote.referral_code,
                "hold_expires_at": booking.hold_expires_at.isoformat(),
            }
        )
        return booking

    async def _hand_off(self, booking: Booking, now: datetime, raise_on_unavailable: bool) -> Booking:
        """PRICING -> AWAITING_PAYMENT, keyed by the booking id."""
        booking.handoff_attempts += 1
        try:
            session = await self.payments.create_session(
                str(booking.id),
                booking.final_price,
                booking.currency,
                booking.customer_ref,
            )
        except UpstreamUnavailableError as e:
            e.problem_details["booking_id"] = str(booking.id)
            await self.db.commit()
            metrics_collector.record_handoff_failure()
            logger.warning(
                "Payment handoff failed",
                extra={
                    "booking_id": str(booking.id),
                    "handoff_attempts": booking.handoff_attempts,
                    "max_attempts": self.max_handoff_attempts,
                }
            )
            if booking.handoff_attempts >= self.max_handoff_attempts:
                await self._expire(booking, now, reason="payment_unavailable")
            if raise_on_unavailable:
                raise
            return booking

        booking.payment_session_id = session.session_id
        booking.checkout_url = session.checkout_url
        self._transition(booking, ReservationStage.AWAITING_PAYMENT)
        await self.db.commit()

        logger.info(
            "Payment handoff issued",
            extra={
                "booking_id": str(booking.id),
                "payment_session_id": session.session_id,
                "amount": booking.final_price,
            }
        )
        return booking

    async def retry_pending_handoffs(self, now: Optional[datetime] = None) -> int:
        """Retry bookings stuck in PRICING after a failed handoff. Returns how many advanced."""
        now = now or utcnow()
        stmt = (
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.PENDING.value,
                Booking.stage == ReservationStage.PRICING.value,
                Booking.hold_expires_at > now
            )
            .order_by(Booking.created_at)
        )
        result = await self.db.execute(stmt)
        stuck_ids = list(result.scalars())

        advanced = 0
        for booking_id in stuck_ids:
            booking = await self._get_booking_by_id(booking_id)
            if booking is None or booking.stage != ReservationStage.PRICING.value:
                continue
            await self._hand_off(booking, now, raise_on_unavailable=False)
            if booking.stage == ReservationStage.AWAITING_PAYMENT.value:
                advanced += 1
        return advanced

    async def handle_payment_callback(
        self,
        booking_id: str,
        outcome: PaymentOutcome,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        React to the processor's single terminal callback for a booking.

        Duplicates for an already terminal booking are no-ops answered with
        the booking as it stands; a success arriving after the booking
        expired or was cancelled also voids the payment session.

        Raises:
            NotFoundError: If the booking does not exist
            PaymentTimeoutError: If a success arrives for a pending booking whose hold
                was already swept
        """
        now = now or utcnow()
        booking = await self.get_booking(booking_id)
        outcome = PaymentOutcome(outcome)

        if booking.status != BookingStatus.PENDING.value:
            if outcome == PaymentOutcome.SUCCEEDED and booking.status != BookingStatus.CONFIRMED.value:
                # The charge must not stand for a booking that will never confirm
                await self._void_payment(booking)
            logger.info(
                "Duplicate payment callback ignored",
                extra={"booking_id": str(booking.id), "outcome": outcome.value, "status": booking.status}
            )
            return booking

        if outcome == PaymentOutcome.FAILED:
            await self._expire(booking, now, reason="payment_failed")
            return booking

        if outcome == PaymentOutcome.TIMEOUT:
            await self._expire(booking, now, reason="payment_timeout")
            return booking

        # The processor may report success for a session whose handoff response we never saw
        if booking.stage == ReservationStage.PRICING.value:
            self._transition(booking, ReservationStage.AWAITING_PAYMENT)

        finalized = await self.calendar.finalize(booking.captain_id, booking.booking_date, booking.id, now=now)
        if not finalized:
            # Hold already swept back to available
            await self._expire(booking, now, reason="hold_expired")
            await self._void_payment(booking)
            raise PaymentTimeoutError(str(booking.id), expired_at=booking.hold_expires_at)

        await self._confirm(booking, now)
        return booking

    async def _confirm(self, booking: Booking, now: datetime) -> None:
        self._transition(booking, ReservationStage.CONFIRMED)
        booking.confirmed_at = now
        await self.db.commit()
        metrics_collector.record_booking_confirmed()

        logger.info(
            "Booking confirmed",
            extra={
                "booking_id": str(booking.id),
                "captain_id": booking.captain_id,
                "date": booking.booking_date.isoformat(),
                "final_price": booking.final_price,
            }
        )

        await self.referrals.record_redemption(booking, now=now)
        await self.notifier.send(
            NotificationKind.BOOKING_CONFIRMED,
            booking.customer_ref,
            {
                "booking_id": str(booking.id),
                "charter_id": str(booking.charter_id),
                "date": booking.booking_date.isoformat(),
                "final_price": booking.final_price,
                "currency": booking.currency,
            },
        )

    async def cancel_booking(
        self,
        booking_id: str,
        reason: str = "customer_request",
        now: Optional[datetime] = None,
        customer_ref: Optional[str] = None,
    ) -> Booking:
        """
        Cancel a pending or confirmed booking and release its slot.

        Cancelling an already cancelled booking is a no-op. When
        ``customer_ref`` is given the booking must belong to that customer.

        Raises:
            NotFoundError: If the booking does not exist
            ForbiddenError: If ``customer_ref`` does not own the booking
            InvalidTransitionError: If the booking already expired
        """
        now = now or utcnow()
        booking = await self.get_booking(booking_id)
        if customer_ref is not None and booking.customer_ref != customer_ref:
            logger.warning(
                "Cancellation refused for non-owner",
                extra={"booking_id": str(booking.id), "customer_ref": customer_ref}
            )
            raise ForbiddenError(detail=f"Booking {booking_id} belongs to another customer")
        if booking.status == BookingStatus.CANCELLED.value:
            return booking

        was_confirmed = booking.status == BookingStatus.CONFIRMED.value
        self._transition(booking, ReservationStage.CANCELLED)
        booking.cancelled_at = now
        booking.failure_reason = reason
        if not was_confirmed:
            await self.referrals.release_reservation(booking)
        await self.db.commit()
        metrics_collector.record_booking_terminated(BookingStatus.CANCELLED.value)

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking.id),
                "was_confirmed": was_confirmed,
                "reason": reason,
            }
        )

        if not was_confirmed and booking.payment_session_id:
            await self._void_payment(booking)

        await self._release_and_promote(booking, now)
        return booking

    async def _expire(self, booking: Booking, now: datetime, reason: str) -> None:
        self._transition(booking, ReservationStage.EXPIRED)
        booking.failure_reason = reason
        await self.referrals.release_reservation(booking)
        await self.db.commit()
        metrics_collector.record_booking_terminated(BookingStatus.EXPIRED.value)

        logger.info(
            "Booking expired",
            extra={"booking_id": str(booking.id), "reason": reason}
        )
        await self._release_and_promote(booking, now)

    async def _release_and_promote(self, booking: Booking, now: datetime) -> None:
        released = await self.calendar.release(booking.captain_id, booking.booking_date, booking.id, now=now)
        if released:
            await self.waitlist.on_captain_slot_freed(booking.captain_id, booking.booking_date, now=now)
            await self.db.refresh(booking)

    async def _void_payment(self, booking: Booking) -> None:
        try:
            await self.payments.void_session(str(booking.id))
        except UpstreamUnavailableError:
            # The processor reconciles by the booking id; log for follow-up
            logger.error(
                "Could not void payment session",
                extra={"booking_id": str(booking.id), "payment_session_id": booking.payment_session_id}
            )

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        """
        Sweep lapsed holds.

        Expires the pending bookings behind them and promotes waitlists for
        the freed dates. Also settles pending bookings whose hold row was
        already released or finalized. Returns the number of bookings expired.
        """
        now = now or utcnow()
        expired = 0

        for captain_id, slot_date, holder in await self.calendar.expire_stale_holds(now=now):
            booking = await self._get_booking_by_id(holder) if holder else None
            if booking is not None and booking.status == BookingStatus.PENDING.value:
                self._transition(booking, ReservationStage.EXPIRED)
                booking.failure_reason = "hold_expired"
                await self.referrals.release_reservation(booking)
                await self.db.commit()
                metrics_collector.record_booking_terminated(BookingStatus.EXPIRED.value)
                expired += 1
            await self.waitlist.on_captain_slot_freed(captain_id, slot_date, now=now)

        stmt = select(Booking.id).where(
            Booking.status == BookingStatus.PENDING.value,
            Booking.hold_expires_at <= now
        )
        result = await self.db.execute(stmt)
        for booking_id in list(result.scalars()):
            booking = await self._get_booking_by_id(booking_id)
            if booking is None or booking.status != BookingStatus.PENDING.value:
                continue
            entry = await self.calendar.get(booking.captain_id, booking.booking_date)
            if entry.status == SlotStatus.BOOKED.value and entry.holder_booking_id == booking.id:
                # Slot was finalized but the confirmation never committed
                if booking.stage == ReservationStage.PRICING.value:
                    self._transition(booking, ReservationStage.AWAITING_PAYMENT)
                await self._confirm(booking, now)
                continue
            self._transition(booking, ReservationStage.EXPIRED)
            booking.failure_reason = "hold_expired"
            await self.referrals.release_reservation(booking)
            await self.db.commit()
            metrics_collector.record_booking_terminated(BookingStatus.EXPIRED.value)
            expired += 1

        if expired:
            logger.info("Expired stale bookings", extra={"expired_count": expired})
        return expired

    # Queries

    async def _get_booking_by_id(self, booking_id: UUID) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking(self, booking_id: str) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self._get_booking_by_id(parse_uuid(booking_id, "booking_id"))
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def list_for_customer(self, customer_ref: str) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.customer_ref == customer_ref)
            .order_by(Booking.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())
