"""Unit tests for price alert registration and scanning."""

from datetime import datetime

import pytest

from charter_engine.clients.notifications import NotificationKind
from charter_engine.core.exceptions import NotFoundError, ValidationError
from charter_engine.models import PriceAlertStatus
from charter_engine.schemas.charter import UpdateCharterPriceRequest
from charter_engine.schemas.price_alert import CreatePriceAlertRequest
from charter_engine.services.charter_service import CharterService
from charter_engine.services.price_alert_service import PriceAlertService

NOW = datetime(2024, 6, 1, 12, 0, 0)


async def set_price(session, charter, half_day: int) -> None:
    await CharterService(session).update_price(
        UpdateCharterPriceRequest(charter_id=str(charter.id), price_half_day=half_day)
    )


@pytest.mark.asyncio
async def test_register_records_current_price(test_session, charter, notifier):
    alert = await PriceAlertService(test_session, notifier).register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )

    assert alert.status == PriceAlertStatus.ACTIVE.value
    assert alert.price_at_creation == 40000
    assert alert.last_seen_price == 40000
    assert alert.trigger_count == 0


@pytest.mark.asyncio
async def test_target_must_be_below_current_price(test_session, charter, notifier):
    with pytest.raises(ValidationError) as exc_info:
        await PriceAlertService(test_session, notifier).register(
            CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=40000)
        )

    assert exc_info.value.code == "TARGET_NOT_BELOW_CURRENT_PRICE"


@pytest.mark.asyncio
async def test_alert_fires_once_per_downward_crossing(test_session, charter, notifier):
    """Target $350 at $400: drop to $340 fires once, holding there is quiet, $410 then $345 fires again."""
    service = PriceAlertService(test_session, notifier)
    alert = await service.register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )

    await set_price(test_session, charter, 34000)
    result = await service.scan(now=NOW)
    assert (result.scanned, result.triggered, result.rearmed) == (1, 1, 0)
    assert len(notifier.of_kind(NotificationKind.PRICE_DROP)) == 1

    for _ in range(3):
        result = await service.scan(now=NOW)
        assert result.triggered == 0
    assert len(notifier.of_kind(NotificationKind.PRICE_DROP)) == 1

    await set_price(test_session, charter, 41000)
    result = await service.scan(now=NOW)
    assert result.rearmed == 1

    await set_price(test_session, charter, 34500)
    result = await service.scan(now=NOW)
    assert result.triggered == 1

    drops = notifier.of_kind(NotificationKind.PRICE_DROP)
    assert len(drops) == 2
    assert [payload["price"] for _, _, payload in drops] == [34000, 34500]

    alerts = await service.list_for_customer("cust_1")
    assert alerts[0].id == alert.id
    assert alerts[0].trigger_count == 2
    assert alerts[0].status == PriceAlertStatus.TRIGGERED.value


@pytest.mark.asyncio
async def test_scan_tracks_price_without_crossing(test_session, charter, notifier):
    service = PriceAlertService(test_session, notifier)
    await service.register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )

    await set_price(test_session, charter, 38000)
    result = await service.scan(now=NOW)

    assert result.triggered == 0
    alerts = await service.list_for_customer("cust_1")
    assert alerts[0].last_seen_price == 38000
    assert alerts[0].status == PriceAlertStatus.ACTIVE.value
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_full_day_alert_watches_full_day_price(test_session, charter, notifier):
    service = PriceAlertService(test_session, notifier)
    await service.register(
        CreatePriceAlertRequest(
            charter_id=str(charter.id), customer_ref="cust_1", target_price=65000, duration="full_day"
        )
    )

    await set_price(test_session, charter, 10000)
    assert (await service.scan(now=NOW)).triggered == 0

    await CharterService(test_session).update_price(
        UpdateCharterPriceRequest(charter_id=str(charter.id), price_full_day=60000)
    )
    assert (await service.scan(now=NOW)).triggered == 1


@pytest.mark.asyncio
async def test_cancelled_alert_is_not_scanned(test_session, charter, notifier):
    service = PriceAlertService(test_session, notifier)
    alert = await service.register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )

    cancelled = await service.cancel(str(alert.id), "cust_1")
    assert cancelled.status == PriceAlertStatus.CANCELLED.value

    await set_price(test_session, charter, 30000)
    assert (await service.scan(now=NOW)).scanned == 0
    assert await service.list_for_customer("cust_1") == []


@pytest.mark.asyncio
async def test_cancel_requires_owner(test_session, charter, notifier):
    service = PriceAlertService(test_session, notifier)
    alert = await service.register(
        CreatePriceAlertRequest(charter_id=str(charter.id), customer_ref="cust_1", target_price=35000)
    )

    with pytest.raises(NotFoundError):
        await service.cancel(str(alert.id), "someone_else")
