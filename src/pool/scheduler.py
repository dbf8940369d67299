"""Periodic browser restart driven by APScheduler."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.config import config
from src.pool.session_pool import SessionPool

logger = logging.getLogger(__name__)

RESTART_JOB_ID = "browser_restart"


def setup_scheduler(pool: SessionPool, interval_minutes: Optional[int] = None) -> Optional[AsyncIOScheduler]:
    """
    Configure (not start) the restart scheduler.
    Returns None when the interval is 0, which disables restarts.
    """
    minutes = config.RESTART_INTERVAL_MINUTES if interval_minutes is None else interval_minutes
    if minutes <= 0:
        logger.info("Scheduled browser restart disabled")
        return None

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        pool.scheduled_restart,
        IntervalTrigger(minutes=minutes),
        id=RESTART_JOB_ID,
        name=RESTART_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Browser restart scheduled every {minutes} minutes")
    return scheduler
