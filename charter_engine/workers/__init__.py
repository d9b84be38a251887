"""Background sweeps for the reservation engine."""

from .hold_expiry_worker import HoldExpiryWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .payment_handoff_worker import PaymentHandoffWorker
from .price_alert_worker import PriceAlertWorker
from .waitlist_offer_worker import WaitlistOfferWorker

__all__ = [
    "HoldExpiryWorker",
    "IdempotencyCleanupWorker",
    "PaymentHandoffWorker",
    "PriceAlertWorker",
    "WaitlistOfferWorker",
]
