"""Referral router: code checks for customers and code issuance for operators."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, RequiredAuth
from ..schemas.referral import (
    CreateReferralCodeRequest,
    ReferralCode,
    ReferralQuote,
    ValidateReferralRequest,
)
from ..schemas.common import problem_responses
from ..services.referral_service import ReferralService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/referral", tags=["referral"])


@router.post("/validate", response_model=ReferralQuote, responses=problem_responses(422))
async def validate_referral(
    request: ValidateReferralRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """
    Check a code inline without consuming it.

    Rejections are 422 problems against the referral_code field.
    """
    service = ReferralService(db)
    referral = await service.validate(request.code, request.customer_ref)

    final_price = None
    if request.base_price is not None:
        quote = await service.price(request.base_price, referral.code, request.customer_ref)
        discount, final_price = quote.discount, quote.final_price
    else:
        discount = referral.discount_amount

    quote_response = ReferralQuote(code=referral.code, discount=discount, final_price=final_price)
    return JSONResponse(status_code=200, content=quote_response.model_dump(mode="json"))


@router.post("/create", response_model=ReferralCode, responses=problem_responses(401, 403, 409, 422))
async def create_referral_code(
    request: CreateReferralCodeRequest,
    db: AsyncSession = DatabaseSession,
    operator: dict = RequiredAuth,
) -> JSONResponse:
    """Issue a referral code (operator only)."""
    referral = await ReferralService(db).create_code(request)

    logger.info(
        "Operator created referral code",
        extra={"operator_id": operator["operator_id"], "referral_code": referral.code}
    )
    return JSONResponse(
        status_code=201,
        content=ReferralCode.model_validate(referral).model_dump(mode="json")
    )
