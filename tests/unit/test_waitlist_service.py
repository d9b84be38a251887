"""Unit tests for waitlist joining, FIFO promotion and offer responses."""

from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from charter_engine.clients.notifications import NotificationKind
from charter_engine.core.exceptions import ConflictError, NotFoundError, SlotConflictError
from charter_engine.models import (
    BookingStatus,
    Charter,
    ReservationStage,
    SlotStatus,
    TripDuration,
    WaitlistEntry,
    WaitlistStatus,
)
from charter_engine.schemas.booking import CreateBookingRequest, PaymentOutcome
from charter_engine.schemas.waitlist import JoinWaitlistRequest, WaitlistCustomer
from charter_engine.services.calendar_store import CalendarStore
from charter_engine.services.reservation_service import ReservationService
from charter_engine.services.waitlist_service import OfferExpiredError

T0 = datetime(2024, 6, 1, 12, 0, 0)
SLOT_DATE = date(2024, 8, 1)
WINDOW = 1800


@pytest_asyncio.fixture
async def c2_charter(test_session):
    charter = Charter(captain_id="C2", name="Sunset Cruise", price_half_day=40000, price_full_day=70000)
    test_session.add(charter)
    await test_session.commit()
    await test_session.refresh(charter)
    return charter


@pytest.fixture
def reservations(test_session, payments, notifier):
    service = ReservationService(test_session, payments, notifier, hold_ttl_seconds=900)
    service.waitlist.response_window_seconds = WINDOW
    return service


async def book_slot(reservations, charter, customer_ref="owner", at=T0):
    booking = await reservations.create_booking(
        CreateBookingRequest(charter_id=str(charter.id), date=SLOT_DATE, customer_ref=customer_ref), now=at
    )
    return await reservations.handle_payment_callback(str(booking.id), PaymentOutcome.SUCCEEDED, now=at)


async def join(reservations, charter, customer_ref, at, party_size=2):
    return await reservations.waitlist.join(
        JoinWaitlistRequest(
            charter_id=str(charter.id),
            date=SLOT_DATE,
            customer=WaitlistCustomer(customer_ref=customer_ref, email=f"{customer_ref}@example.com"),
            party_size=party_size,
        ),
        now=at,
    )


def offered_to(notifier):
    return [recipient for _, recipient, _ in notifier.of_kind(NotificationKind.WAITLIST_OFFER)]


@pytest.mark.asyncio
async def test_first_joiner_offered_first_then_next_on_decline(reservations, c2_charter, notifier):
    """A joins at t=0, B at t=5m, the slot frees at t=10m; A is offered first, B after A declines."""
    booking = await book_slot(reservations, c2_charter)
    entry_a = await join(reservations, c2_charter, "cust_a", T0)
    entry_b = await join(reservations, c2_charter, "cust_b", T0 + timedelta(minutes=5))
    assert entry_a.status == WaitlistStatus.WAITING.value
    assert entry_b.status == WaitlistStatus.WAITING.value

    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))

    entry_a = await reservations.waitlist.get_entry(entry_a.id)
    entry_b = await reservations.waitlist.get_entry(entry_b.id)
    assert entry_a.status == WaitlistStatus.NOTIFIED.value
    assert entry_a.response_deadline == T0 + timedelta(minutes=10, seconds=WINDOW)
    assert entry_b.status == WaitlistStatus.WAITING.value
    assert offered_to(notifier) == ["cust_a@example.com"]

    entry_a, declined_booking = await reservations.waitlist.respond(
        str(entry_a.id), accept=False, now=T0 + timedelta(minutes=12)
    )

    assert declined_booking is None
    assert entry_a.status == WaitlistStatus.EXPIRED.value
    entry_b = await reservations.waitlist.get_entry(entry_b.id)
    assert entry_b.status == WaitlistStatus.NOTIFIED.value
    assert offered_to(notifier) == ["cust_a@example.com", "cust_b@example.com"]


@pytest.mark.asyncio
async def test_join_is_idempotent_per_open_entry(reservations, c2_charter):
    await book_slot(reservations, c2_charter)

    first = await join(reservations, c2_charter, "cust_a", T0)
    second = await join(reservations, c2_charter, "cust_a", T0 + timedelta(minutes=1))

    assert first.id == second.id
    assert len(await reservations.waitlist.list_for_slot(c2_charter.id, SLOT_DATE)) == 1


@pytest.mark.asyncio
async def test_join_open_date_is_offered_immediately(reservations, c2_charter, notifier):
    entry = await join(reservations, c2_charter, "cust_a", T0)

    assert entry.status == WaitlistStatus.NOTIFIED.value
    assert offered_to(notifier) == ["cust_a@example.com"]


@pytest.mark.asyncio
async def test_join_unknown_charter(reservations):
    with pytest.raises(NotFoundError):
        await reservations.waitlist.join(
            JoinWaitlistRequest(
                charter_id="6f1c2a9e-0000-4000-8000-000000000000",
                date=SLOT_DATE,
                customer=WaitlistCustomer(customer_ref="cust_a", email="a@example.com"),
                party_size=2,
            ),
            now=T0,
        )


@pytest.mark.asyncio
async def test_one_offer_per_captain_date_across_charters(reservations, charter, second_charter, notifier):
    """Both charters of captain C1 share the calendar, so the oldest entry across them is offered."""
    booking = await reservations.create_booking(
        CreateBookingRequest(charter_id=str(charter.id), date=SLOT_DATE, customer_ref="owner"), now=T0
    )
    on_second = await join(reservations, second_charter, "cust_early", T0)
    on_first = await join(reservations, charter, "cust_late", T0 + timedelta(minutes=1))

    await reservations.handle_payment_callback(str(booking.id), PaymentOutcome.FAILED, now=T0 + timedelta(minutes=2))

    assert (await reservations.waitlist.get_entry(on_second.id)).status == WaitlistStatus.NOTIFIED.value
    assert (await reservations.waitlist.get_entry(on_first.id)).status == WaitlistStatus.WAITING.value
    assert offered_to(notifier) == ["cust_early@example.com"]

    # A second freeing signal does not stack offers
    assert await reservations.waitlist.on_captain_slot_freed("C1", SLOT_DATE, now=T0 + timedelta(minutes=3)) is None


@pytest.mark.asyncio
async def test_database_refuses_second_offer_for_captain_date(reservations, charter, second_charter, test_session):
    offered = await join(reservations, charter, "cust_a", T0)
    waiting = await join(reservations, second_charter, "cust_b", T0 + timedelta(minutes=1))
    waiting_id = waiting.id

    assert offered.status == WaitlistStatus.NOTIFIED.value
    assert waiting.status == WaitlistStatus.WAITING.value
    assert waiting.captain_id == "C1"

    # A promoter that skipped the outstanding-offer read still loses at the index
    with pytest.raises(IntegrityError):
        await test_session.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == waiting_id)
            .values(status=WaitlistStatus.NOTIFIED.value, notified_at=T0)
        )
    await test_session.rollback()

    assert (await reservations.waitlist.get_entry(waiting_id)).status == WaitlistStatus.WAITING.value


@pytest.mark.asyncio
async def test_accept_starts_booking(reservations, c2_charter, payments, test_session):
    booking = await book_slot(reservations, c2_charter)
    entry = await join(reservations, c2_charter, "cust_a", T0, party_size=6)
    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))

    entry, new_booking = await reservations.waitlist.respond(
        str(entry.id), accept=True, now=T0 + timedelta(minutes=15)
    )

    assert entry.status == WaitlistStatus.CONVERTED.value
    assert entry.booking_id == new_booking.id
    assert new_booking.customer_ref == "cust_a"
    assert new_booking.party_size == 6
    assert new_booking.duration == TripDuration.HALF_DAY.value
    assert new_booking.status == BookingStatus.PENDING.value
    assert new_booking.stage == ReservationStage.AWAITING_PAYMENT.value
    assert payments.sessions[-1]["booking_id"] == str(new_booking.id)

    slot = await CalendarStore(test_session).get("C2", SLOT_DATE)
    assert slot.status == SlotStatus.PENDING_HOLD.value
    assert slot.holder_booking_id == new_booking.id


@pytest.mark.asyncio
async def test_accept_with_processor_down_still_holds(reservations, c2_charter, payments):
    booking = await book_slot(reservations, c2_charter)
    entry = await join(reservations, c2_charter, "cust_a", T0)
    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))
    payments.fail = True

    entry, new_booking = await reservations.waitlist.respond(
        str(entry.id), accept=True, now=T0 + timedelta(minutes=15)
    )

    assert entry.status == WaitlistStatus.CONVERTED.value
    assert new_booking.stage == ReservationStage.PRICING.value
    assert new_booking.handoff_attempts == 1


@pytest.mark.asyncio
async def test_accept_after_direct_booking_took_slot(reservations, c2_charter):
    booking = await book_slot(reservations, c2_charter)
    entry = await join(reservations, c2_charter, "cust_a", T0)
    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))

    # A direct customer claims the date before the waitlisted customer answers
    await reservations.create_booking(
        CreateBookingRequest(charter_id=str(c2_charter.id), date=SLOT_DATE, customer_ref="walk_in"),
        now=T0 + timedelta(minutes=11),
    )

    with pytest.raises(SlotConflictError):
        await reservations.waitlist.respond(str(entry.id), accept=True, now=T0 + timedelta(minutes=12))

    entry = await reservations.waitlist.get_entry(entry.id)
    assert entry.status == WaitlistStatus.WAITING.value
    assert entry.joined_at == T0
    assert entry.response_deadline is None


@pytest.mark.asyncio
async def test_late_answer_expires_offer_and_moves_on(reservations, c2_charter, notifier):
    booking = await book_slot(reservations, c2_charter)
    entry_a = await join(reservations, c2_charter, "cust_a", T0)
    entry_b = await join(reservations, c2_charter, "cust_b", T0 + timedelta(minutes=1))
    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))

    with pytest.raises(OfferExpiredError) as exc_info:
        await reservations.waitlist.respond(
            str(entry_a.id), accept=True, now=T0 + timedelta(minutes=10, seconds=WINDOW + 1)
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "OFFER_EXPIRED"
    assert (await reservations.waitlist.get_entry(entry_a.id)).status == WaitlistStatus.EXPIRED.value
    assert (await reservations.waitlist.get_entry(entry_b.id)).status == WaitlistStatus.NOTIFIED.value


@pytest.mark.asyncio
async def test_expire_unanswered_promotes_next(reservations, c2_charter, notifier):
    booking = await book_slot(reservations, c2_charter)
    entry_a = await join(reservations, c2_charter, "cust_a", T0)
    entry_b = await join(reservations, c2_charter, "cust_b", T0 + timedelta(minutes=1))
    await reservations.cancel_booking(str(booking.id), now=T0 + timedelta(minutes=10))

    assert await reservations.waitlist.expire_unanswered(now=T0 + timedelta(minutes=11)) == 0
    expired = await reservations.waitlist.expire_unanswered(now=T0 + timedelta(minutes=10, seconds=WINDOW + 1))

    assert expired == 1
    assert (await reservations.waitlist.get_entry(entry_a.id)).status == WaitlistStatus.EXPIRED.value
    assert (await reservations.waitlist.get_entry(entry_b.id)).status == WaitlistStatus.NOTIFIED.value
    assert offered_to(notifier) == ["cust_a@example.com", "cust_b@example.com"]


@pytest.mark.asyncio
async def test_respond_to_waiting_entry_conflicts(reservations, c2_charter):
    await book_slot(reservations, c2_charter)
    entry = await join(reservations, c2_charter, "cust_a", T0)

    with pytest.raises(ConflictError):
        await reservations.waitlist.respond(str(entry.id), accept=True, now=T0)


@pytest.mark.asyncio
async def test_blocked_date_is_not_offered(reservations, c2_charter, test_session):
    await CalendarStore(test_session).block("C2", SLOT_DATE, "maintenance", now=T0)

    entry = await join(reservations, c2_charter, "cust_a", T0)

    assert entry.status == WaitlistStatus.WAITING.value
