"""Booking router: creation, payment callbacks, cancellation and lookup."""

import logging
from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher
from ..clients.payments import PaymentGateway
from ..core.dependencies import (
    BookingCaller,
    DatabaseSession,
    IdempotencyKey,
    NotifierDep,
    PaymentGatewayDep,
    PaymentProcessor,
)
from ..models.booking import Booking as BookingModel
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    PaymentCallbackRequest,
)
from ..schemas.common import Money, problem_responses
from ..services.idempotency_service import IdempotencyService
from ..services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def booking_to_schema(booking: BookingModel) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        booking_id=str(booking.id),
        charter_id=str(booking.charter_id),
        captain_id=booking.captain_id,
        customer_ref=booking.customer_ref,
        date=booking.booking_date,
        duration=booking.duration,
        party_size=booking.party_size,
        status=booking.status,
        stage=booking.stage,
        base_price=Money(amount=booking.base_price, currency=booking.currency),
        discount=Money(amount=booking.discount, currency=booking.currency),
        final_price=Money(amount=booking.final_price, currency=booking.currency),
        referral_code=booking.referral_code,
        checkout_url=booking.checkout_url,
        hold_expires_at=booking.hold_expires_at,
        failure_reason=booking.failure_reason,
    )


@router.post("/create", response_model=Booking, responses=problem_responses(404, 409, 422, 503))
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DatabaseSession,
    idempotency_key: Optional[str] = IdempotencyKey,
    payments: PaymentGateway = PaymentGatewayDep,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Claim a date and start payment.

    A taken date answers 409 with code SLOT_CONFLICT so the caller can
    re-prompt; referral problems answer 422 against the referral_code field.
    Replays with the same Idempotency-Key return the original response.
    """
    reservations = ReservationService(db, payments, notifier)

    async def run() -> dict[str, Any]:
        booking = await reservations.create_booking(request)
        return booking_to_schema(booking).model_dump(mode="json")

    if idempotency_key is None:
        return JSONResponse(status_code=200, content=await run())

    stored = await IdempotencyService(db).replay_or_run(
        idempotency_key,
        "booking/create",
        request.model_dump(mode="json"),
        run,
    )
    headers = None
    if "retry_after_seconds" in stored.body:
        headers = {"Retry-After": str(stored.body["retry_after_seconds"])}
    return JSONResponse(status_code=stored.status_code, content=stored.body, headers=headers)


@router.post("/payment-callback", response_model=Booking, responses=problem_responses(401, 404, 409, 410, 422))
async def payment_callback(
    request: PaymentCallbackRequest,
    processor: dict = PaymentProcessor,
    db: AsyncSession = DatabaseSession,
    payments: PaymentGateway = PaymentGatewayDep,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Terminal payment result keyed by booking id. Duplicates are no-ops.

    Only the payment processor may call this; its bearer token is signed
    with the callback secret.
    """
    reservations = ReservationService(db, payments, notifier)
    booking = await reservations.handle_payment_callback(request.booking_id, request.outcome)

    logger.info(
        "Payment callback processed",
        extra={
            "processor_id": processor["processor_id"],
            "booking_id": request.booking_id,
            "outcome": request.outcome.value,
            "session_id": request.session_id,
            "status": booking.status,
        }
    )
    return JSONResponse(status_code=200, content=booking_to_schema(booking).model_dump(mode="json"))


@router.post("/cancel", response_model=Booking, responses=problem_responses(401, 403, 404, 409, 422))
async def cancel_booking(
    request: CancelBookingRequest,
    caller: dict = BookingCaller,
    db: AsyncSession = DatabaseSession,
    payments: PaymentGateway = PaymentGatewayDep,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Cancel a pending or confirmed booking; the date is released and offered to the waitlist.

    Operators may cancel any booking, customers only their own.
    """
    reservations = ReservationService(db, payments, notifier)
    booking = await reservations.cancel_booking(
        request.booking_id,
        request.reason,
        customer_ref=caller["customer_ref"],
    )

    logger.info(
        "Cancellation requested",
        extra={"booking_id": request.booking_id, "caller": caller["subject"], "is_operator": caller["is_operator"]}
    )
    return JSONResponse(status_code=200, content=booking_to_schema(booking).model_dump(mode="json"))


@router.post("/get", response_model=Booking, responses=problem_responses(404, 422))
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DatabaseSession,
    payments: PaymentGateway = PaymentGatewayDep,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """Get booking details."""
    reservations = ReservationService(db, payments, notifier)
    booking = await reservations.get_booking(request.booking_id)
    return JSONResponse(status_code=200, content=booking_to_schema(booking).model_dump(mode="json"))
