"""Waitlist router for waitlist operations."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher
from ..clients.payments import PaymentGateway
from ..core.dependencies import DatabaseSession, NotifierDep, PaymentGatewayDep
from ..models.waitlist import WaitlistEntry as WaitlistEntryModel
from ..schemas.waitlist import (
    JoinWaitlistRequest,
    RespondWaitlistRequest,
    RespondWaitlistResponse,
    WaitlistEntry,
)
from ..schemas.common import problem_responses
from ..services.reservation_service import ReservationService
from ..services.waitlist_service import WaitlistService
from .booking import booking_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/waitlist", tags=["waitlist"])


def _convert_waitlist_entry_to_schema(entry: WaitlistEntryModel) -> WaitlistEntry:
    """Convert waitlist entry model to schema."""
    return WaitlistEntry(
        id=str(entry.id),
        charter_id=str(entry.charter_id),
        date=entry.requested_date,
        customer_ref=entry.customer_ref,
        party_size=entry.party_size,
        status=entry.status,
        joined_at=entry.joined_at,
        notified_at=entry.notified_at,
        response_deadline=entry.response_deadline
    )


@router.post("/join", response_model=WaitlistEntry, responses=problem_responses(404, 422))
async def join_waitlist(
    request: JoinWaitlistRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Join a charter date's waitlist.
    
    Idempotent per customer while their entry is open.
    """
    waitlist_service = WaitlistService(db, notifier)
    entry = await waitlist_service.join(request)
    
    return JSONResponse(
        status_code=200,
        content=_convert_waitlist_entry_to_schema(entry).model_dump(mode="json")
    )


@router.post("/respond", response_model=RespondWaitlistResponse, responses=problem_responses(404, 409, 422))
async def respond_to_offer(
    request: RespondWaitlistRequest,
    db: AsyncSession = DatabaseSession,
    payments: PaymentGateway = PaymentGatewayDep,
    notifier: NotificationDispatcher = NotifierDep,
) -> JSONResponse:
    """
    Accept or decline a waitlist offer.
    
    Accepting starts a booking for the customer; if a direct booking took
    the date first the answer is 409 SLOT_CONFLICT and the entry keeps its
    place in line.
    """
    reservations = ReservationService(db, payments, notifier)
    entry, booking = await reservations.waitlist.respond(request.entry_id, request.accept)
    
    logger.info(
        "Waitlist response processed",
        extra={
            "waitlist_entry_id": request.entry_id,
            "accept": request.accept,
            "status": entry.status,
            "booking_id": str(booking.id) if booking else None
        }
    )
    
    response = RespondWaitlistResponse(
        entry=_convert_waitlist_entry_to_schema(entry),
        booking=booking_to_schema(booking) if booking else None
    )
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))
