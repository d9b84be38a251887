#!/usr/bin/env python3
"""Create the schema and seed a demo charter and referral code."""

import asyncio
import logging

from sqlalchemy import func, select

from charter_engine.core.database import async_session_factory, init_db
from charter_engine.models import Charter, ReferralCode

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_sample_data() -> None:
    """Seed one captain with two charters and the SAVE10 code."""
    async with async_session_factory() as db:
        existing = await db.execute(select(func.count(Charter.id)))
        if existing.scalar() > 0:
            logger.info("Sample data already exists, skipping")
            return

        db.add_all([
            Charter(
                captain_id="C1",
                name="Inshore Redfish",
                price_half_day=40000,
                price_full_day=70000,
                currency="USD"
            ),
            Charter(
                captain_id="C1",
                name="Offshore Tuna",
                price_half_day=65000,
                price_full_day=120000,
                currency="USD"
            ),
            ReferralCode(code="SAVE10", discount_amount=1000),
        ])
        await db.commit()
        logger.info("Sample data created")


async def main() -> None:
    await init_db()
    logger.info("Database schema created")
    await create_sample_data()
    logger.info("Start the API with: uvicorn charter_engine.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
