"""Unit tests for referral validation, pricing and redemption."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from charter_engine.core.exceptions import (
    AlreadyUsedReferralError,
    ConflictError,
    ExpiredReferralError,
    InvalidReferralError,
)
from charter_engine.models import Booking, BookingStatus, ReferralCode, ReferralRedemption, ReservationStage
from charter_engine.schemas.referral import CreateReferralCodeRequest
from charter_engine.services.referral_service import ReferralService, normalize_code

NOW = datetime(2024, 6, 1, 12, 0, 0)


async def add_code(session, **kwargs) -> ReferralCode:
    code = ReferralCode(**kwargs)
    session.add(code)
    await session.commit()
    return code


async def add_booking(
    session,
    charter,
    customer_ref="cust_1",
    referral_code="SAVE10",
    status=BookingStatus.PENDING,
    booking_date=date(2024, 7, 4),
):
    booking = Booking(
        charter_id=charter.id,
        captain_id=charter.captain_id,
        customer_ref=customer_ref,
        booking_date=booking_date,
        duration="half_day",
        party_size=2,
        status=status.value,
        stage=ReservationStage.CONFIRMED.value if status == BookingStatus.CONFIRMED else ReservationStage.AWAITING_PAYMENT.value,
        base_price=40000,
        discount=1000,
        final_price=39000,
        currency="USD",
        referral_code=referral_code,
        handoff_attempts=1,
        hold_expires_at=NOW + timedelta(minutes=15),
    )
    session.add(booking)
    await session.commit()
    return booking


def test_normalize_code():
    assert normalize_code(" save10 ") == "SAVE10"
    assert normalize_code("") is None
    assert normalize_code(None) is None


@pytest.mark.asyncio
async def test_price_without_code(test_session):
    quote = await ReferralService(test_session).price(40000, None, "cust_1", now=NOW)

    assert quote.discount == 0
    assert quote.final_price == 40000
    assert quote.referral_code is None


@pytest.mark.asyncio
async def test_price_with_save10(test_session, save10):
    quote = await ReferralService(test_session).price(40000, "save10", "cust_1", now=NOW)

    assert quote.discount == 1000
    assert quote.final_price == 39000
    assert quote.referral_code == "SAVE10"


@pytest.mark.asyncio
async def test_discount_never_exceeds_price(test_session):
    await add_code(test_session, code="BIGONE", discount_amount=50000)

    quote = await ReferralService(test_session).price(40000, "BIGONE", "cust_1", now=NOW)

    assert quote.discount == 40000
    assert quote.final_price == 0


@pytest.mark.asyncio
async def test_unknown_code_invalid(test_session):
    with pytest.raises(InvalidReferralError) as exc_info:
        await ReferralService(test_session).validate("NOPE", "cust_1", now=NOW)

    problem = exc_info.value.problem_details
    assert exc_info.value.status_code == 422
    assert problem["code"] == "REFERRAL_INVALID"
    assert problem["violations"][0]["path"] == "referral_code"


@pytest.mark.asyncio
async def test_inactive_code_invalid(test_session):
    await add_code(test_session, code="OLD", discount_amount=500, is_active=False)

    with pytest.raises(InvalidReferralError):
        await ReferralService(test_session).validate("OLD", "cust_1", now=NOW)


@pytest.mark.asyncio
async def test_expired_code(test_session):
    await add_code(test_session, code="SPRING", discount_amount=500, expires_at=NOW - timedelta(days=1))

    with pytest.raises(ExpiredReferralError) as exc_info:
        await ReferralService(test_session).validate("SPRING", "cust_1", now=NOW)

    assert exc_info.value.code == "REFERRAL_EXPIRED"


async def reserve(session, service, booking):
    await service.reserve(booking, now=NOW)
    await session.commit()


@pytest.mark.asyncio
async def test_code_in_use_on_pending_booking(test_session, charter, save10):
    pending = await add_booking(test_session, charter)
    service = ReferralService(test_session)
    await reserve(test_session, service, pending)

    with pytest.raises(AlreadyUsedReferralError) as exc_info:
        await service.validate("SAVE10", "cust_1", now=NOW)
    assert "in progress" in exc_info.value.problem_details["detail"]

    # The booking carrying the code may re-check itself
    await service.validate("SAVE10", "cust_1", exclude_booking_id=pending.id, now=NOW)


@pytest.mark.asyncio
async def test_reserve_refuses_second_booking_of_customer(test_session, charter, save10):
    first = await add_booking(test_session, charter, booking_date=date(2024, 7, 4))
    second = await add_booking(test_session, charter, booking_date=date(2024, 7, 5))
    service = ReferralService(test_session)

    await reserve(test_session, service, first)
    with pytest.raises(AlreadyUsedReferralError):
        await service.reserve(second, now=NOW)
    await test_session.rollback()

    count = await test_session.execute(select(func.count(ReferralRedemption.id)))
    assert count.scalar() == 1
    assert (await service.get_code("SAVE10")).times_redeemed == 1


@pytest.mark.asyncio
async def test_redemption_is_per_customer(test_session, charter, save10):
    booking = await add_booking(test_session, charter, status=BookingStatus.CONFIRMED)
    service = ReferralService(test_session)
    await reserve(test_session, service, booking)

    assert await service.has_redeemed("SAVE10", "cust_1") is False
    assert await service.record_redemption(booking, now=NOW) is True
    assert await service.has_redeemed("SAVE10", "cust_1") is True

    with pytest.raises(AlreadyUsedReferralError):
        await service.validate("SAVE10", "cust_1", now=NOW)

    # Another customer may still use it
    await service.validate("SAVE10", "cust_2", now=NOW)


@pytest.mark.asyncio
async def test_redemption_recorded_once(test_session, charter, save10):
    booking = await add_booking(test_session, charter, status=BookingStatus.CONFIRMED)
    service = ReferralService(test_session)
    await reserve(test_session, service, booking)

    assert await service.record_redemption(booking, now=NOW) is True
    assert await service.record_redemption(booking, now=NOW) is False

    count = await test_session.execute(select(func.count(ReferralRedemption.id)))
    assert count.scalar() == 1
    assert (await service.get_code("SAVE10")).times_redeemed == 1


@pytest.mark.asyncio
async def test_global_cap(test_session, charter):
    await add_code(test_session, code="FIRST100", discount_amount=2000, max_redemptions=1)
    service = ReferralService(test_session)
    winner = await add_booking(
        test_session, charter, customer_ref="cust_a", referral_code="FIRST100", booking_date=date(2024, 7, 4)
    )
    loser = await add_booking(
        test_session, charter, customer_ref="cust_b", referral_code="FIRST100", booking_date=date(2024, 7, 5)
    )

    await reserve(test_session, service, winner)
    with pytest.raises(AlreadyUsedReferralError) as exc_info:
        await service.reserve(loser, now=NOW)
    await test_session.rollback()
    assert "redemption limit" in exc_info.value.problem_details["detail"]

    with pytest.raises(AlreadyUsedReferralError):
        await service.validate("FIRST100", "cust_c", now=NOW)

    count = await test_session.execute(select(func.count(ReferralRedemption.id)))
    assert count.scalar() == 1


@pytest.mark.asyncio
async def test_release_gives_the_use_back(test_session, charter):
    await add_code(test_session, code="FIRST100", discount_amount=2000, max_redemptions=1)
    service = ReferralService(test_session)
    lapsed = await add_booking(test_session, charter, referral_code="FIRST100", booking_date=date(2024, 7, 4))
    retry = await add_booking(test_session, charter, referral_code="FIRST100", booking_date=date(2024, 7, 5))

    await reserve(test_session, service, lapsed)
    assert await service.release_reservation(lapsed) is True
    await test_session.commit()

    assert (await service.get_code("FIRST100")).times_redeemed == 0
    assert await service.release_reservation(lapsed) is False

    # Both the customer and the capped slot are free again
    await service.validate("FIRST100", "cust_1", now=NOW)
    await reserve(test_session, service, retry)
    assert (await service.get_code("FIRST100")).times_redeemed == 1


@pytest.mark.asyncio
async def test_release_keeps_redeemed_use(test_session, charter, save10):
    booking = await add_booking(test_session, charter, status=BookingStatus.CONFIRMED)
    service = ReferralService(test_session)
    await reserve(test_session, service, booking)
    await service.record_redemption(booking, now=NOW)

    assert await service.release_reservation(booking) is False
    await test_session.commit()

    assert (await service.get_code("SAVE10")).times_redeemed == 1
    assert await service.has_redeemed("SAVE10", "cust_1") is True


@pytest.mark.asyncio
async def test_multi_use_code_redeemable_repeatedly(test_session, charter):
    await add_code(test_session, code="CREW", discount_amount=500, multi_use=True)
    service = ReferralService(test_session)

    for day in (4, 5, 6):
        booking = await add_booking(
            test_session, charter, referral_code="CREW", status=BookingStatus.CONFIRMED, booking_date=date(2024, 7, day)
        )
        await reserve(test_session, service, booking)
        assert await service.record_redemption(booking, now=NOW) is True
        await service.validate("CREW", "cust_1", now=NOW)

    assert (await service.get_code("CREW")).times_redeemed == 3


@pytest.mark.asyncio
async def test_booking_without_code_redeems_nothing(test_session, charter):
    booking = await add_booking(test_session, charter, referral_code=None)
    service = ReferralService(test_session)

    assert await service.record_redemption(booking, now=NOW) is False
    assert await service.release_reservation(booking) is False


@pytest.mark.asyncio
async def test_create_code(test_session):
    service = ReferralService(test_session)

    code = await service.create_code(CreateReferralCodeRequest(code="summer24", discount_amount=1500))

    assert code.code == "SUMMER24"
    assert code.times_redeemed == 0
    assert code.is_active is True

    with pytest.raises(ConflictError):
        await service.create_code(CreateReferralCodeRequest(code="SUMMER24", discount_amount=1500))


@pytest.mark.asyncio
async def test_unknown_booking_code_logged_not_raised(test_session, charter):
    booking = await add_booking(test_session, charter, referral_code="GHOST", status=BookingStatus.CONFIRMED)
    service = ReferralService(test_session)

    assert await service.record_redemption(booking, now=NOW) is False

    with pytest.raises(InvalidReferralError):
        await service.reserve(booking, now=NOW)
