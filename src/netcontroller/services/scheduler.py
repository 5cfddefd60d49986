"""Background scheduler running the poll cycle on a fixed interval."""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from netcontroller.services.network_controller import NetworkController

logger = logging.getLogger(__name__)

CYCLE_JOB_ID = "network-elements-check"

_scheduler: AsyncIOScheduler | None = None


def start_scheduler(controller: NetworkController, interval: int) -> AsyncIOScheduler:
    """Start the APScheduler instance running one poll cycle per interval."""
    global _scheduler
    if _scheduler is not None:
        return _scheduler

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        controller.run_cycle,
        IntervalTrigger(seconds=interval, timezone=timezone.utc),
        id=CYCLE_JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=interval,
        next_run_time=datetime.now(timezone.utc),
    )
    scheduler.start()
    logger.info("Network controller scheduler started (every %s seconds)", interval)
    _scheduler = scheduler
    return scheduler


def shutdown_scheduler() -> None:
    """Stop the APScheduler instance."""
    global _scheduler
    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    logger.info("Network controller scheduler stopped")
    _scheduler = None
