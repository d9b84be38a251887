"""Price alert router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher
from ..core.dependencies import DatabaseSession, NotifierDep
from ..models.price_alert import PriceAlert as PriceAlertModel
from ..schemas.price_alert import (
    CancelPriceAlertRequest,
    CreatePriceAlertRequest,
    ListPriceAlertsRequest,
    PriceAlert,
    PriceAlertList,
)
from ..schemas.common import problem_responses
from ..services.price_alert_service import PriceAlertService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/price-alert", tags=["price-alert"])


def _convert_alert_to_schema(alert: PriceAlertModel) -> PriceAlert:
    return PriceAlert(
        id=str(alert.id),
        charter_id=str(alert.charter_id),
        customer_ref=alert.customer_ref,
        duration=alert.duration,
        target_price=alert.target_price,
        price_at_creation=alert.price_at_creation,
        last_seen_price=alert.last_seen_price,
        status=alert.status,
        trigger_count=alert.trigger_count,
        last_triggered_at=alert.last_triggered_at,
        created_at=alert.created_at,
    )


@router.post("/create", response_model=PriceAlert, responses=problem_responses(404, 422))
async def create_price_alert(
    request: CreatePriceAlertRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Watch a charter's price.

    Rejected with 422 when the target is not below the current price.
    """
    alert = await PriceAlertService(db, notifier).register(request)
    return JSONResponse(status_code=200, content=_convert_alert_to_schema(alert).model_dump(mode="json"))


@router.post("/cancel", response_model=PriceAlert, responses=problem_responses(404, 422))
async def cancel_price_alert(
    request: CancelPriceAlertRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    alert = await PriceAlertService(db, notifier).cancel(request.alert_id, request.customer_ref)
    return JSONResponse(status_code=200, content=_convert_alert_to_schema(alert).model_dump(mode="json"))


@router.post("/list", response_model=PriceAlertList, responses=problem_responses(422))
async def list_price_alerts(
    request: ListPriceAlertsRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    alerts = await PriceAlertService(db, notifier).list_for_customer(request.customer_ref)
    response = PriceAlertList(items=[_convert_alert_to_schema(alert) for alert in alerts])
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))
