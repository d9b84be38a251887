"""Clients for the external collaborators: payment processor and notification dispatch."""

from .notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationKind,
    WebhookNotificationDispatcher,
    build_notification_dispatcher,
)
from .payments import (
    HttpPaymentGateway,
    PaymentGateway,
    PaymentSession,
    SandboxPaymentGateway,
    build_payment_gateway,
)

__all__ = [
    "HttpPaymentGateway",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationKind",
    "PaymentGateway",
    "PaymentSession",
    "SandboxPaymentGateway",
    "WebhookNotificationDispatcher",
    "build_notification_dispatcher",
    "build_payment_gateway",
]
