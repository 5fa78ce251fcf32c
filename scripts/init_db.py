"""
Create the structured store schema
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import close_database, init_database
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def main():
    logger.info(f"Connecting to {settings.DATABASE_URL}")
    try:
        await init_database()
        logger.info("Tables created successfully.")
    finally:
        await close_database()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
