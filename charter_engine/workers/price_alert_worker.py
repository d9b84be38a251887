"""Background worker scanning charter prices against price alerts."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_notifier
from ..services.price_alert_service import PriceAlertService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class PriceAlertWorker(BaseWorker):
    """Periodic read-only price scan; independent of the booking path."""

    def __init__(self, interval_seconds: int = 300, **kwargs):
        super().__init__(name="PriceAlert", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> int:
        summary = await PriceAlertService(db, get_notifier()).scan()
        logger.debug(
            "Price scan finished",
            extra={
                "worker": self.name,
                "scanned": summary.scanned,
                "triggered": summary.triggered,
                "rearmed": summary.rearmed,
            }
        )
        return summary.triggered + summary.rearmed
