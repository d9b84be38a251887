"""Charter router: registration and price changes (operator only)."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, RequiredAuth
from ..models.charter import Charter as CharterModel
from ..schemas.charter import Charter, CreateCharterRequest, UpdateCharterPriceRequest
from ..schemas.common import Money, problem_responses
from ..services.charter_service import CharterService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/charter", tags=["charter"])


def _convert_charter_to_schema(charter: CharterModel) -> Charter:
    """Convert charter model to schema."""
    return Charter(
        id=str(charter.id),
        captain_id=charter.captain_id,
        name=charter.name,
        price_half_day=Money(amount=charter.price_half_day, currency=charter.currency),
        price_full_day=Money(amount=charter.price_full_day, currency=charter.currency),
        price_updated_at=charter.price_updated_at
    )


@router.post("/create", response_model=Charter, responses=problem_responses(401, 403, 422))
async def create_charter(
    request: CreateCharterRequest,
    db: AsyncSession = DatabaseSession,
    operator: dict = RequiredAuth,
) -> JSONResponse:
    """Register a charter for a captain."""
    charter = await CharterService(db).create_charter(request)
    
    logger.info(
        "Operator created charter",
        extra={"operator_id": operator["operator_id"], "charter_id": str(charter.id)}
    )
    return JSONResponse(
        status_code=201,
        content=_convert_charter_to_schema(charter).model_dump(mode="json")
    )


@router.post("/update-price", response_model=Charter, responses=problem_responses(401, 403, 404, 422))
async def update_charter_price(
    request: UpdateCharterPriceRequest,
    db: AsyncSession = DatabaseSession,
    operator: dict = RequiredAuth,
) -> JSONResponse:
    """Change the price list; price alerts react on their next scan."""
    charter = await CharterService(db).update_price(request)
    
    logger.info(
        "Operator updated charter price",
        extra={"operator_id": operator["operator_id"], "charter_id": str(charter.id)}
    )
    return JSONResponse(
        status_code=200,
        content=_convert_charter_to_schema(charter).model_dump(mode="json")
    )
