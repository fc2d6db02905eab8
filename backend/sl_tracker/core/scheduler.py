"""APScheduler setup for periodic tasks."""

import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(tracker, ingestor, catalog) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    from sl_tracker.config import settings

    scheduler = AsyncIOScheduler()

    # Poll the live feed; overlapping ticks are reconciled by tick sequence numbers
    scheduler.add_job(
        tracker.poll_vehicles,
        "interval",
        seconds=settings.poll_interval_seconds,
        id="poll_vehicles",
        name="Poll Trafiklab for vehicle positions and trip updates",
        max_instances=3,
    )

    scheduler.add_job(
        ingestor.run_once,
        "interval",
        seconds=settings.ingest_interval_seconds,
        id="ingest_history",
        name="Append vehicle positions to trip history",
        max_instances=1,
    )

    scheduler.add_job(
        catalog.refresh_if_stale,
        "interval",
        hours=settings.catalog_check_hours,
        args=[datetime.timedelta(hours=settings.static_cache_max_age_hours)],
        id="refresh_catalog",
        name="Refresh static extract when stale",
        max_instances=1,
    )

    return scheduler
