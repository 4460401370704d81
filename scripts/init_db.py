#!/usr/bin/env python3
"""
Database Initialization Script
Create the permissions and charts tables regardless of ENVIRONMENT
"""

import asyncio
import sys

from backend.db import session as db_session
from backend.core.logging import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


async def main():
    """Main initialization function"""
    logger.info("Initializing database...")

    try:
        await db_session.init_db()
        await db_session.create_tables()
        logger.info("Database initialized successfully!")
        return 0
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1
    finally:
        await db_session.close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
