"""FastAPI dependencies for database, authentication, idempotency and collaborators."""

from functools import lru_cache
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clients.notifications import NotificationDispatcher, build_notification_dispatcher
from ..clients.payments import PaymentGateway, build_payment_gateway
from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, ForbiddenError, ValidationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.
    
    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


OPERATOR_ROLE = "operator"
CUSTOMER_ROLE = "customer"
PAYMENT_PROCESSOR_ROLE = "payment_processor"


def _decode_bearer(authorization: Optional[str], secret: str) -> dict:
    """
    Split a ``Bearer`` header and verify the token against ``secret``.

    Raises:
        AuthenticationError: If the header is missing or malformed, or the
            token fails verification or carries no subject
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")
    
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")
    
    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")
    
    try:
        # Expiry is checked by PyJWT when the token carries an exp claim
        payload = jwt.decode(token, secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")
    
    if payload.get("sub") is None:
        raise AuthenticationError(detail="Invalid token payload")
    
    return payload


async def get_current_operator(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Validate the operator's Bearer token.
    
    Args:
        authorization: Authorization header with Bearer token
        
    Returns:
        dict: Operator claims from the validated token
        
    Raises:
        AuthenticationError: If token is invalid or missing
        ForbiddenError: If the token does not carry the operator role
    """
    payload = _decode_bearer(authorization, settings.bearer_token_secret)
    roles = payload.get("roles", [])
    if OPERATOR_ROLE not in roles:
        raise ForbiddenError(detail="Operator role required")
    
    return {
        "operator_id": payload["sub"],
        "captain_id": payload.get("captain_id"),
        "roles": roles,
    }


async def get_booking_caller(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Validate an operator or customer Bearer token for booking actions.

    Customer tokens name the booking owner in a ``customer_ref`` claim;
    ownership itself is checked against the booking by the service.
    """
    payload = _decode_bearer(authorization, settings.bearer_token_secret)
    roles = payload.get("roles", [])
    is_operator = OPERATOR_ROLE in roles
    if not is_operator and (CUSTOMER_ROLE not in roles or not payload.get("customer_ref")):
        raise ForbiddenError(detail="Operator or booking owner credentials required")

    return {
        "subject": payload["sub"],
        "is_operator": is_operator,
        "customer_ref": None if is_operator else payload["customer_ref"],
    }


async def get_payment_processor(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Validate the payment processor's callback token.

    Callback tokens are signed with ``payment_callback_secret``, never the
    operator secret, so no operator or customer token can settle a payment.
    """
    payload = _decode_bearer(authorization, settings.payment_callback_secret)
    if PAYMENT_PROCESSOR_ROLE not in payload.get("roles", []):
        raise AuthenticationError(detail="Payment processor credentials required")

    return {"processor_id": payload["sub"]}


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate idempotency key from request headers.
    
    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None
    
    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError(
            detail="Idempotency key must be between 1 and 255 characters",
            field="Idempotency-Key"
        )
    
    return idempotency_key


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """Process-wide payment gateway built from settings."""
    return build_payment_gateway(settings)


@lru_cache
def get_notifier() -> NotificationDispatcher:
    """Process-wide notification dispatcher built from settings."""
    return build_notification_dispatcher(settings)


RequiredAuth = Depends(get_current_operator)
DatabaseSession = Depends(get_db)
IdempotencyKey = Depends(get_idempotency_key)
PaymentGatewayDep = Depends(get_payment_gateway)
NotifierDep = Depends(get_notifier)
BookingCaller = Depends(get_booking_caller)
PaymentProcessor = Depends(get_payment_processor)
