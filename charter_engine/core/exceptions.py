"""
Reservation errors as RFC 9457 problem documents.

Every error a client can act on is a ``ProblemDetailsException``. Its
``problem_details`` dict is the response body verbatim, so services may
add members (``booking_id`` on a 503, for instance) after construction.
Extension members used across the API:

- ``code``: stable machine-readable identifier, e.g. ``SLOT_CONFLICT``
- ``retryable``: whether repeating the same request may succeed
- ``violations``: ``[{path, message}]`` for field-level rejections
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import utcnow

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://example.com/problems"


def problem_type(slug: str) -> str:
    return f"{PROBLEM_TYPE_BASE}/{slug}"


def _violation(path: str, message: str) -> Dict[str, str]:
    return {"path": path, "message": message}


class ProblemDetailsException(HTTPException):
    """An HTTP error whose body is a problem document."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"

        body: Dict[str, Any] = {"type": self.type_uri, "title": title, "status": status_code}
        if detail:
            body["detail"] = detail
        body.update(extensions or {})
        self.problem_details = body

        super().__init__(status_code=status_code, detail=body, headers=headers)

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """A well-formed request broke a business rule; ``field`` names the offending member."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        field: Optional[str] = None,
        code: str = "VALIDATION_FAILED",
    ):
        extensions: Dict[str, Any] = {"code": code, "retryable": False}
        if field:
            extensions["violations"] = [_violation(field, detail)]

        super().__init__(422, "Validation Error", detail, problem_type("validation-error"), extensions)


class AuthenticationError(ProblemDetailsException):
    def __init__(self, detail: str = "Operator credentials are required"):
        super().__init__(
            401,
            "Authentication Required",
            detail,
            problem_type("authentication-required"),
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(ProblemDetailsException):
    """Valid credentials that do not cover the requested resource."""

    def __init__(self, detail: str = "These credentials cannot act on this resource"):
        super().__init__(
            403,
            "Forbidden",
            detail,
            problem_type("forbidden"),
            {"code": "FORBIDDEN", "retryable": False},
        )


class NotFoundError(ProblemDetailsException):
    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "NOT_FOUND", "resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id
            detail = detail or f"No {resource_type} with ID '{resource_id}'"

        super().__init__(
            404,
            "Resource Not Found",
            detail or f"No such {resource_type}",
            problem_type("resource-not-found"),
            extensions,
        )


class ConflictError(ProblemDetailsException):
    """The request lost to the current state of a resource (409)."""

    def __init__(
        self,
        detail: str,
        conflicting_resource: Optional[Dict[str, Any]] = None,
        code: str = "RESOURCE_CONFLICT",
        **extra: Any,
    ):
        extensions: Dict[str, Any] = {"code": code, "retryable": False, **extra}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(409, "Resource Conflict", detail, problem_type("resource-conflict"), extensions)


class SlotConflictError(ConflictError):
    """The date was not available when the binding claim was attempted."""

    def __init__(self, captain_id: str, slot_date: date, status: Optional[str] = None):
        super().__init__(
            f"This date was just booked for captain {captain_id} on {slot_date.isoformat()}. Please choose another date.",
            conflicting_resource={"captain_id": captain_id, "date": slot_date.isoformat(), "status": status},
            code="SLOT_CONFLICT",
        )


class InvalidTransitionError(ConflictError):
    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            f"Booking {booking_id} cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            booking_id=booking_id,
            current_stage=current,
            target_stage=target,
        )


class ReferralError(ProblemDetailsException):
    """Base class for referral code problems; always reported against the referral_code field."""

    error_code = "REFERRAL_INVALID"

    def __init__(self, referral_code: str, detail: str):
        super().__init__(
            422,
            "Referral Code Rejected",
            detail,
            problem_type("referral-code"),
            {
                "code": self.error_code,
                "retryable": False,
                "referral_code": referral_code,
                "violations": [_violation("referral_code", detail)],
            },
        )


class InvalidReferralError(ReferralError):
    error_code = "REFERRAL_INVALID"

    def __init__(self, referral_code: str):
        super().__init__(referral_code, f"Referral code '{referral_code}' is not valid")


class AlreadyUsedReferralError(ReferralError):
    error_code = "REFERRAL_ALREADY_USED"

    def __init__(self, referral_code: str, detail: Optional[str] = None):
        super().__init__(referral_code, detail or f"Referral code '{referral_code}' has already been used")


class ExpiredReferralError(ReferralError):
    error_code = "REFERRAL_EXPIRED"

    def __init__(self, referral_code: str, expired_at: datetime):
        super().__init__(referral_code, f"Referral code '{referral_code}' expired at {expired_at.isoformat()}Z")


class PaymentTimeoutError(ProblemDetailsException):
    """The hold lapsed before the payment processor reported a result."""

    def __init__(self, booking_id: str, expired_at: Optional[datetime] = None):
        extensions: Dict[str, Any] = {"code": "PAYMENT_TIMEOUT", "retryable": False, "booking_id": booking_id}
        if expired_at:
            extensions["expired_at"] = expired_at.isoformat() + "Z"

        super().__init__(
            410,
            "Session Expired",
            "Your session expired before payment completed. Please try again.",
            problem_type("payment-timeout"),
            extensions,
        )


class UpstreamUnavailableError(ProblemDetailsException):
    """The payment or notification collaborator could not be reached."""

    def __init__(self, service: str, retry_after: int = 30, detail: Optional[str] = None):
        self.service = service
        super().__init__(
            503,
            "Upstream Unavailable",
            detail or "Please try again shortly.",
            problem_type("upstream-unavailable"),
            {
                "code": "UPSTREAM_UNAVAILABLE",
                "retryable": True,
                "service": service,
                "retry_after_seconds": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.problem_details, headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures become a 422 problem listing one violation per rejected field."""
    violations = [
        _violation(
            ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            error.get("msg", "Invalid value"),
        )
        for error in exc.errors()
    ]
    problem = ValidationError(detail="The request data failed validation")
    problem.problem_details["violations"] = violations
    return await problem_details_handler(request, problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the failure under an error id and answer a bare 500 problem."""
    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path},
    )

    return JSONResponse(
        status_code=500,
        content={
            "type": problem_type("internal-server-error"),
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred while processing the request",
            "instance": str(request.url),
            "error_id": error_id,
            "timestamp": utcnow().isoformat() + "Z",
        },
    )
