"""Payment handoff to the external payment processor."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from ..core.config import Settings
from ..core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class PaymentSession(BaseModel):
    """A checkout session opened with the processor for one booking."""

    session_id: str = Field(..., description="Processor session identifier")
    checkout_url: Optional[str] = Field(None, description="Where the customer completes payment")


class PaymentGateway(ABC):
    """
    Narrow handoff interface to the payment processor.

    The booking id is the correlation id: it is sent as the processor's
    idempotency key and comes back on the asynchronous callback.
    """

    @abstractmethod
    async def create_session(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        customer_ref: str,
    ) -> PaymentSession:
        """Open a payment session; raises UpstreamUnavailableError when unreachable."""

    @abstractmethod
    async def void_session(self, booking_id: str) -> None:
        """Ask the processor to void any session or charge for this booking."""


class HttpPaymentGateway(PaymentGateway):
    """Payment gateway speaking JSON over HTTP to the processor."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self, booking_id: str) -> dict[str, str]:
        headers = {"Idempotency-Key": booking_id}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, path: str, booking_id: str, payload: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(path, json=payload, headers=self._headers(booking_id))
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Payment processor rejected request",
                extra={
                    "booking_id": booking_id,
                    "path": path,
                    "status_code": e.response.status_code,
                }
            )
            raise UpstreamUnavailableError(
                service="payments",
                detail=f"Payment processor returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "Payment processor unreachable",
                extra={"booking_id": booking_id, "path": path, "error": str(e)}
            )
            raise UpstreamUnavailableError(service="payments") from e

    async def create_session(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        customer_ref: str,
    ) -> PaymentSession:
        response = await self._post(
            "/v1/sessions",
            booking_id,
            {
                "correlation_id": booking_id,
                "amount": amount,
                "currency": currency,
                "customer_ref": customer_ref,
            },
        )
        data = response.json()
        return PaymentSession(session_id=data["id"], checkout_url=data.get("url"))

    async def void_session(self, booking_id: str) -> None:
        await self._post(f"/v1/sessions/{booking_id}/void", booking_id, {"correlation_id": booking_id})


class SandboxPaymentGateway(PaymentGateway):
    """Gateway used when no processor is configured; sessions are only logged."""

    async def create_session(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        customer_ref: str,
    ) -> PaymentSession:
        logger.info(
            "Sandbox payment session opened",
            extra={"booking_id": booking_id, "amount": amount, "currency": currency}
        )
        return PaymentSession(session_id=f"sandbox_{booking_id}")

    async def void_session(self, booking_id: str) -> None:
        logger.info("Sandbox payment session voided", extra={"booking_id": booking_id})


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    """Pick the gateway implementation from settings."""
    if settings.payment_processor_url:
        return HttpPaymentGateway(
            base_url=settings.payment_processor_url,
            api_key=settings.payment_processor_api_key,
            timeout=settings.upstream_timeout_seconds,
        )
    return SandboxPaymentGateway()
