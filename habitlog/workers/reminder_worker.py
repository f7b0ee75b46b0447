from __future__ import annotations

import asyncio
import logging
import os
from datetime import date

from habitlog.db_init import init_db
from habitlog.errors import HabitlogError
from habitlog.services.notifications import send_habit_reminders
from habitlog.settings import get_settings

logger = logging.getLogger(__name__)


async def run_once(today: date | None = None) -> dict:
    try:
        return await send_habit_reminders(today)
    except HabitlogError as exc:
        logger.error("Reminder run failed: %s", exc)
        return {"successful": 0, "failed": 0, "error": str(exc)}


async def run_forever(interval_seconds: int | None = None) -> None:
    interval = interval_seconds or get_settings().reminder_interval_seconds
    await init_db()
    while True:
        await run_once()
        await asyncio.sleep(interval)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("BACKEND_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    asyncio.run(run_forever())
