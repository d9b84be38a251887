"""Base worker class for periodic sweeps."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.
    
    Each iteration gets its own database session; a failed iteration is
    logged and the loop carries on after the interval.
    """
    
    def __init__(
        self,
        name: str,
        interval_seconds: int = 60,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize the worker.
        
        Args:
            name: Worker name for logging
            interval_seconds: How often to run the task
            session_factory: Session factory; the application's by default
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory or async_session_factory
        self._running = False
        self._task: Optional[asyncio.Task] = None
        
    @abstractmethod
    async def process(self, db: AsyncSession) -> int:
        """Process one iteration; returns how many items were handled."""
    
    @property
    def running(self) -> bool:
        return self._running
    
    async def run_once(self) -> int:
        """Run a single iteration in a fresh session."""
        async with self.session_factory() as db:
            try:
                return await self.process(db)
            except Exception:
                await db.rollback()
                raise
    
    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Worker is already running", extra={"worker": self.name})
            return
            
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Worker started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds}
        )
    
    async def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            return
            
        self._running = False
        
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
                
        logger.info("Worker stopped", extra={"worker": self.name})
    
    async def _run(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                start_time = time.monotonic()
                handled = await self.run_once()
                duration = time.monotonic() - start_time
                
                if handled:
                    logger.info(
                        "Worker iteration completed",
                        extra={
                            "worker": self.name,
                            "handled": handled,
                            "duration_seconds": round(duration, 3),
                        }
                    )
                
                await asyncio.sleep(max(0, self.interval_seconds - duration))
                    
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "Worker iteration failed",
                    exc_info=True,
                    extra={"worker": self.name, "error": str(e)}
                )
                await asyncio.sleep(self.interval_seconds)
