"""Unit tests for the charter registry."""

from uuid import uuid4

import pytest

from charter_engine.core.exceptions import NotFoundError, ValidationError
from charter_engine.schemas.charter import CreateCharterRequest, UpdateCharterPriceRequest
from charter_engine.services.charter_service import CharterService, parse_uuid


def test_parse_uuid_rejects_garbage():
    with pytest.raises(ValidationError) as exc_info:
        parse_uuid("not-a-uuid", "charter_id")

    assert exc_info.value.problem_details["violations"][0]["path"] == "charter_id"


@pytest.mark.asyncio
async def test_create_charter(test_session):
    service = CharterService(test_session)

    charter = await service.create_charter(CreateCharterRequest(
        captain_id="C9",
        name="Backcountry Snook",
        price_half_day=45000,
        price_full_day=80000,
    ))

    assert charter.id is not None
    assert charter.currency == "USD"
    assert charter.price_for("half_day") == 45000
    assert charter.price_for("full_day") == 80000


@pytest.mark.asyncio
async def test_update_price(test_session, charter):
    before = charter.price_updated_at

    updated = await CharterService(test_session).update_price(
        UpdateCharterPriceRequest(charter_id=str(charter.id), price_half_day=35000)
    )

    assert updated.price_half_day == 35000
    assert updated.price_full_day == 70000
    assert updated.price_updated_at >= before


@pytest.mark.asyncio
async def test_update_price_requires_a_price(test_session, charter):
    with pytest.raises(ValidationError):
        await CharterService(test_session).update_price(UpdateCharterPriceRequest(charter_id=str(charter.id)))


@pytest.mark.asyncio
async def test_unknown_charter(test_session):
    with pytest.raises(NotFoundError):
        await CharterService(test_session).get_charter_by_id_or_raise(uuid4())
