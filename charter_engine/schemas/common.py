"""Shared schemas: money and the problem documents errors are reported as."""

from http import HTTPStatus
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Money(BaseModel):
    """An amount in minor units of one currency."""

    amount: int = Field(..., ge=0, description="Amount in minor units (e.g., cents)")
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class Violation(BaseModel):
    """One rejected request field."""

    path: str = Field(..., description="Dotted path to the field, e.g. referral_code")
    message: str


class Problem(BaseModel):
    """RFC 9457 problem document; extension members vary by problem type."""

    model_config = ConfigDict(extra="allow")

    type: str = Field("about:blank", description="Problem type URI")
    title: str
    status: int
    detail: Optional[str] = None
    code: Optional[str] = Field(None, description="Stable machine-readable code, e.g. SLOT_CONFLICT")
    retryable: Optional[bool] = None
    violations: Optional[list[Violation]] = None
    conflicting_resource: Optional[dict[str, Any]] = None
    booking_id: Optional[str] = Field(None, description="Booking the problem concerns, when one exists")


def problem_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """OpenAPI ``responses`` entries documenting the problems an endpoint may return."""
    return {
        code: {"model": Problem, "description": HTTPStatus(code).phrase}
        for code in status_codes
    }
