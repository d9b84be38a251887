"""Background worker deleting expired idempotency records."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..services.idempotency_service import IdempotencyService
from .base import BaseWorker


class IdempotencyCleanupWorker(BaseWorker):
    def __init__(self, interval_seconds: int = 3600, **kwargs):
        super().__init__(name="IdempotencyCleanup", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> int:
        return await IdempotencyService(db).purge_expired()
