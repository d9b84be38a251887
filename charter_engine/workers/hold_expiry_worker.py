"""Background worker for expiring stale holds."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_notifier, get_payment_gateway
from ..services.reservation_service import ReservationService
from .base import BaseWorker


class HoldExpiryWorker(BaseWorker):
    """
    Reverts pending holds past their expiry to available.

    The bookings behind them are expired and the freed dates are offered to
    their waitlists. The interval bounds how long a lapsed hold can linger.
    """

    def __init__(self, interval_seconds: int = 30, **kwargs):
        super().__init__(name="HoldExpiry", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> int:
        reservations = ReservationService(db, get_payment_gateway(), get_notifier())
        return await reservations.expire_stale()
