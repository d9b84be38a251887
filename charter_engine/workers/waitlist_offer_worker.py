"""Background worker expiring unanswered waitlist offers."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_notifier
from ..services.waitlist_service import WaitlistService
from .base import BaseWorker


class WaitlistOfferWorker(BaseWorker):
    """Expires offers past their response deadline; the next customer in line is notified."""

    def __init__(self, interval_seconds: int = 30, **kwargs):
        super().__init__(name="WaitlistOffer", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> int:
        return await WaitlistService(db, get_notifier()).expire_unanswered()
