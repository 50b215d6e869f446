"""
APScheduler setup for the periodic purge of expired records.

Stores without native expiry (SQLite) keep expired rows until they are
purged; reads already ignore them.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from message_tracker.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

PURGE_JOB_ID = "purge_expired_records"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler

    if scheduler is None:
        scheduler = AsyncIOScheduler(timezone="UTC")

    return scheduler


async def start_scheduler() -> None:
    """Start the scheduler."""
    sched = get_scheduler()
    if not sched.running:
        sched.start()
        logger.info("Scheduler started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
    scheduler = None


def schedule_purge(tracker, interval_minutes: Optional[int] = None) -> bool:
    """
    Register the periodic purge job for a tracker.

    Args:
        tracker: DedupTracker whose store should be purged
        interval_minutes: Job interval (defaults to settings.purge_interval_minutes)

    Returns:
        True if the job was scheduled, False if the store expires keys itself
    """
    if not hasattr(tracker.store, "purge_expired"):
        logger.info("Store expires keys natively, purge job not scheduled")
        return False

    minutes = interval_minutes or settings.purge_interval_minutes
    sched = get_scheduler()
    sched.add_job(
        purge_expired_records,
        trigger=IntervalTrigger(minutes=minutes),
        id=PURGE_JOB_ID,
        replace_existing=True,
        kwargs={"tracker": tracker},
    )
    logger.info(f"Scheduled {PURGE_JOB_ID} every {minutes} minutes")
    return True


async def purge_expired_records(tracker) -> int:
    """
    Purge expired records from the tracker's store.

    This function is called by the scheduler; errors are reported by the
    tracker and never reach the scheduler.
    """
    purged = await tracker.cleanup_expired_records()
    logger.debug(f"Purge job removed {purged} records")
    return purged
