"""
Delete OTP records and request-log rows dead for longer than
OTP_RETENTION_HOURS. Meant to run from cron.

    python purge_stale_records.py
"""

import asyncio
import logging
from contextlib import aclosing
from datetime import timedelta

from recovery.api.deps import get_clock, get_delivery_gateway, get_otp_manager, get_stores
from recovery.core.config import settings
from recovery.core.database import close_db
from recovery.core.logging_config import setup_logging


logger = logging.getLogger("purge_stale_records")


async def purge() -> int:
    try:
        async with aclosing(get_stores()) as store_sessions:
            async for stores in store_sessions:
                manager = await get_otp_manager(stores, get_delivery_gateway(), get_clock())
                return await manager.purge_stale_records(
                    timedelta(hours=settings.OTP_RETENTION_HOURS)
                )
    finally:
        await close_db()
    return 0


if __name__ == "__main__":
    setup_logging()
    removed = asyncio.run(purge())
    logger.info(f"Done, {removed} rows removed")
