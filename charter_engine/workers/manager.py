"""Worker manager for coordinating background sweeps."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .base import BaseWorker
from .hold_expiry_worker import HoldExpiryWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .payment_handoff_worker import PaymentHandoffWorker
from .price_alert_worker import PriceAlertWorker
from .waitlist_offer_worker import WaitlistOfferWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.
    
    Coordinates starting, stopping, and monitoring of all background workers.
    """
    
    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()
        
    def _setup_workers(self) -> None:
        """Initialize all workers with their configured intervals."""
        self.workers["hold_expiry"] = HoldExpiryWorker(
            interval_seconds=settings.hold_sweep_interval_seconds
        )
        self.workers["payment_handoff"] = PaymentHandoffWorker(
            interval_seconds=settings.payment_handoff_retry_interval_seconds
        )
        self.workers["waitlist_offer"] = WaitlistOfferWorker(
            interval_seconds=settings.waitlist_sweep_interval_seconds
        )
        self.workers["price_alert"] = PriceAlertWorker(
            interval_seconds=settings.price_alert_scan_interval_seconds
        )
        self.workers["idempotency_cleanup"] = IdempotencyCleanupWorker()
        
        logger.info("Initialized workers", extra={"workers": list(self.workers)})
    
    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error("Failed to start worker", exc_info=True, extra={"worker": name, "error": str(e)})
        
        logger.info("Started workers", extra={"count": len(self.workers)})
    
    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )
        
        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})
        
        logger.info("All workers stopped")
    
    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.
        
        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]
    
    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
