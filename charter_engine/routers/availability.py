"""Availability router: advisory calendar reads and operator blocks."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher
from ..core.dependencies import DatabaseSession, NotifierDep, RequiredAuth
from ..core.exceptions import ValidationError
from ..schemas.availability import (
    AvailabilityDay,
    AvailabilityQuery,
    AvailabilityResponse,
    BlockDateRequest,
    CalendarSlot,
    UnblockDateRequest,
)
from ..schemas.common import problem_responses
from ..services.calendar_store import CalendarStore
from ..services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"])


def _query(
    captain_id: str = Query(..., min_length=1, max_length=64),
    date_from: date = Query(...),
    date_to: date = Query(...),
) -> AvailabilityQuery:
    try:
        return AvailabilityQuery(captain_id=captain_id, date_from=date_from, date_to=date_to)
    except ValueError as e:
        raise ValidationError(detail=str(e), field="date_to")


@router.get("", response_model=AvailabilityResponse, responses=problem_responses(422))
async def get_availability(
    query: AvailabilityQuery = Depends(_query),
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """
    Advisory availability for date pickers.
    
    May be stale; only a booking's claim is binding.
    """
    entries = await CalendarStore(db).list_range(query.captain_id, query.date_from, query.date_to)
    response = AvailabilityResponse(
        captain_id=query.captain_id,
        days=[AvailabilityDay(date=entry.slot_date, status=entry.status) for entry in entries]
    )
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))


@router.post("/block", response_model=CalendarSlot, responses=problem_responses(401, 403, 409, 422))
async def block_date(
    request: BlockDateRequest,
    db: AsyncSession = DatabaseSession,
    operator: dict = RequiredAuth,
) -> JSONResponse:
    """Take an available date off the calendar (operator only)."""
    entry = await CalendarStore(db).block(request.captain_id, request.date, request.reason)
    
    logger.info(
        "Operator blocked date",
        extra={
            "operator_id": operator["operator_id"],
            "captain_id": request.captain_id,
            "date": request.date.isoformat()
        }
    )
    
    slot = CalendarSlot(
        captain_id=entry.captain_id,
        date=entry.slot_date,
        status=entry.status,
        block_reason=entry.block_reason
    )
    return JSONResponse(status_code=200, content=slot.model_dump(mode="json"))


@router.post("/unblock", response_model=CalendarSlot, responses=problem_responses(401, 403, 422))
async def unblock_date(
    request: UnblockDateRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationDispatcher = NotifierDep,
    operator: dict = RequiredAuth,
) -> JSONResponse:
    """Return a blocked date to the calendar and offer it to the waitlist (operator only)."""
    calendar = CalendarStore(db)
    if await calendar.unblock(request.captain_id, request.date):
        await WaitlistService(db, notifier).on_captain_slot_freed(request.captain_id, request.date)
        logger.info(
            "Operator unblocked date",
            extra={
                "operator_id": operator["operator_id"],
                "captain_id": request.captain_id,
                "date": request.date.isoformat()
            }
        )
    
    entry = await calendar.get(request.captain_id, request.date)
    slot = CalendarSlot(
        captain_id=entry.captain_id,
        date=entry.slot_date,
        status=entry.status,
        block_reason=entry.block_reason
    )
    return JSONResponse(status_code=200, content=slot.model_dump(mode="json"))
