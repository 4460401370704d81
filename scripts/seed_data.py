#!/usr/bin/env python3
"""
Seed Data Script
Create a sample chart and print a bearer token for local testing
"""

import asyncio
import sys

from sqlalchemy import select

from backend.db import session as db_session
from backend.db.models import Chart
from backend.core.security import create_access_token
from backend.core.logging import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

SAMPLE_OWNER_ID = "kakao_1000001"

SAMPLE_CHART = {
    "ownerName": "Kim",
    "zodiac": {"sign": "Leo", "element": "fire"},
    "mbti": "ENFP",
    "bloodType": "O",
    "scores": {"passion": 88, "intuition": 74, "stability": 52, "sociability": 91, "creativity": 80},
    "summary": "A warm, restless soul who lights up every room.",
}


async def seed_chart():
    """Create the sample chart if it is missing"""
    async with db_session.async_session_maker() as session:
        result = await session.execute(
            select(Chart).where(Chart.owner_id == SAMPLE_OWNER_ID)
        )
        if result.scalar_one_or_none():
            logger.info("Sample chart already exists")
            return

        session.add(Chart(owner_id=SAMPLE_OWNER_ID, data=SAMPLE_CHART))
        await session.commit()
        logger.info(f"Created sample chart for {SAMPLE_OWNER_ID}")


async def main():
    """Main seed function"""
    try:
        await db_session.init_db()
        await db_session.create_tables()
        await seed_chart()
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        return 1
    finally:
        await db_session.close_db()

    print(f"Owner ID: {SAMPLE_OWNER_ID}")
    print(f"Bearer token: {create_access_token({'sub': SAMPLE_OWNER_ID})}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
