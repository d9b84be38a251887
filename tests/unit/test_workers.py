"""Unit tests for the background sweeps."""

import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charter_engine.core.clock import utcnow
from charter_engine.core.exceptions import UpstreamUnavailableError
from charter_engine.models import BookingStatus, IdempotencyRecord, ReservationStage, WaitlistStatus
from charter_engine.schemas.booking import CreateBookingRequest
from charter_engine.schemas.price_alert import CreatePriceAlertRequest
from charter_engine.schemas.waitlist import JoinWaitlistRequest, WaitlistCustomer
from charter_engine.services.price_alert_service import PriceAlertService
from charter_engine.services.reservation_service import ReservationService
from charter_engine.workers import (
    HoldExpiryWorker,
    IdempotencyCleanupWorker,
    PaymentHandoffWorker,
    PriceAlertWorker,
    WaitlistOfferWorker,
)
from charter_engine.workers.manager import WorkerManager

TRIP_DATE = date(2099, 7, 4)


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


def booking_request(charter, customer_ref="cust_1"):
    return CreateBookingRequest(charter_id=str(charter.id), date=TRIP_DATE, customer_ref=customer_ref)


@pytest.mark.asyncio
async def test_hold_expiry_worker_expires_lapsed_booking(test_session, session_factory, charter, payments, notifier):
    reservations = ReservationService(test_session, payments, notifier, hold_ttl_seconds=900)
    booking = await reservations.create_booking(booking_request(charter), now=utcnow() - timedelta(hours=1))

    worker = HoldExpiryWorker(session_factory=session_factory)
    assert await worker.run_once() == 1

    booking = await reservations.get_booking(str(booking.id))
    assert booking.status == BookingStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_payment_handoff_worker_retries(test_session, session_factory, charter, payments, notifier):
    reservations = ReservationService(test_session, payments, notifier, hold_ttl_seconds=900)
    payments.fail = True
    with pytest.raises(UpstreamUnavailableError):
        await reservations.create_booking(booking_request(charter))

    # The worker talks to the configured sandbox processor
    worker = PaymentHandoffWorker(session_factory=session_factory)
    assert await worker.run_once() == 1

    bookings = await reservations.list_for_customer("cust_1")
    assert bookings[0].stage == ReservationStage.AWAITING_PAYMENT.value


@pytest.mark.asyncio
async def test_waitlist_offer_worker_expires_lapsed_offer(test_session, session_factory, charter, payments, notifier):
    reservations = ReservationService(test_session, payments, notifier)
    reservations.waitlist.response_window_seconds = 60
    entry = await reservations.waitlist.join(
        JoinWaitlistRequest(
            charter_id=str(charter.id),
            date=TRIP_DATE,
            customer=WaitlistCustomer(customer_ref="cust_a", email="a@example.com"),
            party_size=2,
        ),
        now=utcnow() - timedelta(minutes=5),
    )
    assert entry.status == WaitlistStatus.NOTIFIED.value

    worker = WaitlistOfferWorker(session_factory=session_factory)
    assert await worker.run_once() == 1

    entry = await reservations.waitlist.get_entry(entry.id)
    assert entry.status == WaitlistStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_price_alert_worker_counts_changes(test_session, session_factory, charter, notifier):
    await PriceAlertService(test_session, notifier).register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )
    charter.price_half_day = 30000
    await test_session.commit()

    worker = PriceAlertWorker(session_factory=session_factory)
    assert await worker.run_once() == 1
    assert await worker.run_once() == 0


@pytest.mark.asyncio
async def test_idempotency_cleanup_worker(test_session, session_factory):
    test_session.add(IdempotencyRecord(
        idempotency_key="old",
        operation="booking/create",
        request_body_hash="0" * 64,
        response_status_code=200,
        response_body="{}",
        expires_at=utcnow() - timedelta(hours=1),
    ))
    await test_session.commit()

    assert await IdempotencyCleanupWorker(session_factory=session_factory).run_once() == 1


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory):
    worker = PriceAlertWorker(interval_seconds=1, session_factory=session_factory)

    await worker.start()
    assert worker.running is True
    await asyncio.sleep(0.05)
    await worker.stop()

    assert worker.running is False


def test_manager_registers_every_sweep():
    manager = WorkerManager()

    assert set(manager.get_worker_status()) == {
        "hold_expiry",
        "payment_handoff",
        "waitlist_offer",
        "price_alert",
        "idempotency_cleanup",
    }
    assert not any(manager.get_worker_status().values())
    assert isinstance(manager.get_worker("hold_expiry"), HoldExpiryWorker)
