"""Background worker retrying payment handoffs that hit an unreachable processor."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_notifier, get_payment_gateway
from ..services.reservation_service import ReservationService
from .base import BaseWorker


class PaymentHandoffWorker(BaseWorker):
    """Retries bookings stuck in PRICING until its attempt limit is reached."""

    def __init__(self, interval_seconds: int = 20, **kwargs):
        super().__init__(name="PaymentHandoff", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> int:
        reservations = ReservationService(db, get_payment_gateway(), get_notifier())
        return await reservations.retry_pending_handoffs()
