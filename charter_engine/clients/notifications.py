"""Fire-and-forget notification dispatch."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import httpx

from ..core.config import Settings

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Notification kinds the engine emits."""
    WAITLIST_OFFER = "waitlist_offer"
    PRICE_DROP = "price_drop"
    BOOKING_CONFIRMED = "booking_confirmed"


class NotificationDispatcher(ABC):
    """
    Outbound notification collaborator.

    Delivery (email, SMS, push) and delivery retries belong to the
    collaborator. Callers never wait on or retry a send.
    """

    @abstractmethod
    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        """Hand one notification to the collaborator."""


class WebhookNotificationDispatcher(NotificationDispatcher):
    """Posts notifications to a webhook; failures are logged and dropped."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        body = {"kind": kind.value, "recipient": recipient, "payload": payload}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=body)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Notification dispatch failed",
                extra={"kind": kind.value, "recipient": recipient, "error": str(e)}
            )
            return

        logger.info(
            "Notification dispatched",
            extra={"kind": kind.value, "recipient": recipient}
        )


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Dispatcher for local runs: writes notifications to the log."""

    def __init__(self, logger_: Optional[logging.Logger] = None):
        self.logger = logger_ or logger

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        self.logger.info(
            "Notification",
            extra={"kind": kind.value, "recipient": recipient, "payload": payload}
        )


def build_notification_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Pick the dispatcher implementation from settings."""
    if settings.notification_webhook_url:
        return WebhookNotificationDispatcher(
            url=settings.notification_webhook_url,
            timeout=settings.upstream_timeout_seconds,
        )
    return LoggingNotificationDispatcher()
