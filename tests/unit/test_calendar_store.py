"""Unit tests for the calendar store and the conflict guard."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from charter_engine.core.exceptions import ConflictError, SlotConflictError
from charter_engine.models import SlotStatus
from charter_engine.services.calendar_store import CalendarStore, ClaimResult
from charter_engine.services.conflict_guard import Availability, ConflictGuard

NOW = datetime(2024, 6, 1, 12, 0, 0)
SLOT_DATE = date(2024, 7, 4)


@pytest.mark.asyncio
async def test_missing_row_reads_as_available(test_session):
    entry = await CalendarStore(test_session).get("C1", SLOT_DATE)

    assert entry.status == SlotStatus.AVAILABLE
    assert entry.holder_booking_id is None


@pytest.mark.asyncio
async def test_claim_moves_slot_to_pending_hold(test_session):
    store = CalendarStore(test_session)
    booking_id = uuid4()

    outcome = await store.try_claim("C1", SLOT_DATE, booking_id, ttl_seconds=900, now=NOW)

    assert outcome == ClaimResult.CLAIMED
    entry = await store.get("C1", SLOT_DATE)
    assert entry.status == SlotStatus.PENDING_HOLD.value
    assert entry.holder_booking_id == booking_id
    assert entry.hold_expires_at == NOW + timedelta(seconds=900)


@pytest.mark.asyncio
async def test_second_claim_conflicts(test_session):
    """Two customers claim C1/2024-07-04; only the first one gets it."""
    store = CalendarStore(test_session)
    first, second = uuid4(), uuid4()

    assert await store.try_claim("C1", SLOT_DATE, first, 900, now=NOW) == ClaimResult.CLAIMED
    assert await store.try_claim("C1", SLOT_DATE, second, 900, now=NOW) == ClaimResult.CONFLICT

    entry = await store.get("C1", SLOT_DATE)
    assert entry.holder_booking_id == first


@pytest.mark.asyncio
async def test_claims_are_per_captain_and_date(test_session):
    store = CalendarStore(test_session)

    assert await store.try_claim("C1", SLOT_DATE, uuid4(), 900, now=NOW) == ClaimResult.CLAIMED
    assert await store.try_claim("C2", SLOT_DATE, uuid4(), 900, now=NOW) == ClaimResult.CLAIMED
    assert await store.try_claim("C1", SLOT_DATE + timedelta(days=1), uuid4(), 900, now=NOW) == ClaimResult.CLAIMED


@pytest.mark.asyncio
async def test_release_only_by_holder(test_session):
    store = CalendarStore(test_session)
    holder = uuid4()
    await store.try_claim("C1", SLOT_DATE, holder, 900, now=NOW)

    assert await store.release("C1", SLOT_DATE, uuid4(), now=NOW) is False
    assert await store.release("C1", SLOT_DATE, holder, now=NOW) is True

    entry = await store.get("C1", SLOT_DATE)
    assert entry.status == SlotStatus.AVAILABLE.value
    assert entry.holder_booking_id is None
    assert entry.hold_expires_at is None


@pytest.mark.asyncio
async def test_finalize_requires_live_hold(test_session):
    store = CalendarStore(test_session)
    holder = uuid4()
    await store.try_claim("C1", SLOT_DATE, holder, 900, now=NOW)

    assert await store.finalize("C1", SLOT_DATE, uuid4(), now=NOW) is False
    assert await store.finalize("C1", SLOT_DATE, holder, now=NOW) is True

    entry = await store.get("C1", SLOT_DATE)
    assert entry.status == SlotStatus.BOOKED.value
    assert entry.hold_expires_at is None

    # Booked is not claimable
    assert await store.try_claim("C1", SLOT_DATE, uuid4(), 900, now=NOW) == ClaimResult.CONFLICT


@pytest.mark.asyncio
async def test_expire_stale_holds_releases_only_lapsed(test_session):
    store = CalendarStore(test_session)
    stale, fresh = uuid4(), uuid4()
    await store.try_claim("C1", SLOT_DATE, stale, 60, now=NOW)
    await store.try_claim("C1", SLOT_DATE + timedelta(days=1), fresh, 3600, now=NOW)

    released = await store.expire_stale_holds(now=NOW + timedelta(seconds=61))

    assert released == [("C1", SLOT_DATE, stale)]
    assert (await store.get("C1", SLOT_DATE)).status == SlotStatus.AVAILABLE.value
    assert (await store.get("C1", SLOT_DATE + timedelta(days=1))).status == SlotStatus.PENDING_HOLD.value


@pytest.mark.asyncio
async def test_expire_stale_holds_leaves_finalized_slot(test_session):
    store = CalendarStore(test_session)
    holder = uuid4()
    await store.try_claim("C1", SLOT_DATE, holder, 60, now=NOW)
    await store.finalize("C1", SLOT_DATE, holder, now=NOW)

    assert await store.expire_stale_holds(now=NOW + timedelta(hours=1)) == []
    assert (await store.get("C1", SLOT_DATE)).status == SlotStatus.BOOKED.value


@pytest.mark.asyncio
async def test_block_and_unblock(test_session):
    store = CalendarStore(test_session)

    entry = await store.block("C1", SLOT_DATE, "engine service", now=NOW)
    assert entry.status == SlotStatus.BLOCKED.value
    assert entry.block_reason == "engine service"

    # Blocking twice is harmless
    await store.block("C1", SLOT_DATE, "engine service", now=NOW)

    assert await store.try_claim("C1", SLOT_DATE, uuid4(), 900, now=NOW) == ClaimResult.CONFLICT
    assert await store.release("C1", SLOT_DATE, now=NOW) is False

    assert await store.unblock("C1", SLOT_DATE, now=NOW) is True
    assert await store.unblock("C1", SLOT_DATE, now=NOW) is False
    assert (await store.get("C1", SLOT_DATE)).status == SlotStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_block_held_slot_conflicts(test_session):
    store = CalendarStore(test_session)
    await store.try_claim("C1", SLOT_DATE, uuid4(), 900, now=NOW)

    with pytest.raises(ConflictError):
        await store.block("C1", SLOT_DATE, "maintenance", now=NOW)


@pytest.mark.asyncio
async def test_list_range_fills_gaps(test_session):
    store = CalendarStore(test_session)
    await store.try_claim("C1", date(2024, 7, 2), uuid4(), 900, now=NOW)
    await store.block("C1", date(2024, 7, 3), "maintenance", now=NOW)

    entries = await store.list_range("C1", date(2024, 7, 1), date(2024, 7, 4))

    assert [entry.slot_date for entry in entries] == [date(2024, 7, d) for d in range(1, 5)]
    assert [SlotStatus(entry.status) for entry in entries] == [
        SlotStatus.AVAILABLE,
        SlotStatus.PENDING_HOLD,
        SlotStatus.BLOCKED,
        SlotStatus.AVAILABLE,
    ]


@pytest.mark.asyncio
async def test_guard_check_is_advisory(test_session):
    guard = ConflictGuard(test_session, hold_ttl_seconds=900)

    assert await guard.check_availability("C1", SLOT_DATE) == Availability.AVAILABLE
    assert await guard.claim("C1", SLOT_DATE, uuid4(), now=NOW) == ClaimResult.CLAIMED
    assert await guard.check_availability("C1", SLOT_DATE) == Availability.UNAVAILABLE


@pytest.mark.asyncio
async def test_guard_claim_or_raise_reports_status(test_session):
    guard = ConflictGuard(test_session, hold_ttl_seconds=900)
    await guard.claim_or_raise("C1", SLOT_DATE, uuid4(), now=NOW)

    with pytest.raises(SlotConflictError) as exc_info:
        await guard.claim_or_raise("C1", SLOT_DATE, uuid4(), now=NOW)

    problem = exc_info.value.problem_details
    assert exc_info.value.status_code == 409
    assert problem["code"] == "SLOT_CONFLICT"
    assert problem["conflicting_resource"]["status"] == "pending_hold"
