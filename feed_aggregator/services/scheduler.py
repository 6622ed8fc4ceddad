"""Periodic refresh scheduling.

Runs a refresh of every feed on a fixed interval with APScheduler. The
interval can be changed while the server runs.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feed_aggregator.log_system.unified_logger import UnifiedLogger


REFRESH_JOB_ID = "refresh_all_feeds"

# Intervals offered to users, in seconds (5, 10, 15 and 30 minutes)
POLLING_INTERVALS = (300, 600, 900, 1800)

_scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler(
    job: Callable[[], Awaitable[object]],
    interval_seconds: float,
) -> AsyncIOScheduler:
    """Create and start the scheduler running ``job`` every ``interval_seconds``.

    Must be called with an event loop running.

    Args:
        job: Coroutine function refreshing all feeds
        interval_seconds: Seconds between runs

    Returns:
        The started scheduler
    """
    global _scheduler
    logger = UnifiedLogger.get_logger(__name__)

    if _scheduler is not None:
        shutdown_scheduler()

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        job,
        "interval",
        seconds=interval_seconds,
        id=REFRESH_JOB_ID,
        name="Refresh all feeds",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()

    logger.info(f"Refresh scheduler started, interval: {interval_seconds} seconds")
    return _scheduler


def get_polling_interval() -> Optional[int]:
    """Seconds between scheduled refreshes, or None if the scheduler is not running."""
    if _scheduler is None:
        return None

    job = _scheduler.get_job(REFRESH_JOB_ID)
    if job is None:
        return None
    return int(job.trigger.interval.total_seconds())


def set_polling_interval(interval_seconds: float) -> bool:
    """Restart the refresh timer with a new interval.

    Returns:
        True if rescheduled, False if the scheduler is not running
    """
    logger = UnifiedLogger.get_logger(__name__)

    if _scheduler is None or _scheduler.get_job(REFRESH_JOB_ID) is None:
        return False

    _scheduler.reschedule_job(REFRESH_JOB_ID, trigger="interval", seconds=interval_seconds)
    logger.info(f"Refresh interval changed to {interval_seconds} seconds")
    return True


def shutdown_scheduler() -> None:
    """Stop the scheduler if it is running."""
    global _scheduler
    logger = UnifiedLogger.get_logger(__name__)

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        logger.info("Refresh scheduler stopped")
        _scheduler = None
