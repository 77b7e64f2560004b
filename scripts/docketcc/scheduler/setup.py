"""
APScheduler factory: creates and configures the scheduler with all jobs.
"""

import logging

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from docketcc.config import Config

logger = logging.getLogger(__name__)


def create_scheduler(config: Config) -> AsyncIOScheduler:
    """Create an AsyncIOScheduler with all pipeline jobs configured.

    The monitoring job fires on a fixed interval; whether a given firing
    actually polls is decided by the time-of-day strategy inside the run.
    Jobs use misfire_grace_time=3600 to survive host sleep/wake.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    timezone = config.timezone
    scheduler = AsyncIOScheduler(timezone=timezone)

    _add_monitoring_job(scheduler, config)
    _add_delivery_job(scheduler, config)
    _add_maintenance_job(scheduler, config)

    from docketcc.scheduler.error_handler import job_error_listener

    scheduler.add_listener(job_error_listener, mask=EVENT_JOB_ERROR)

    logger.info("Scheduler configured with %d jobs (timezone=%s)", len(scheduler.get_jobs()), timezone)
    return scheduler


def _add_monitoring_job(scheduler: AsyncIOScheduler, config: Config) -> None:
    from docketcc.scheduler.jobs import monitoring_job

    interval = config.get("monitoring.poll_interval_minutes", 120)
    scheduler.add_job(
        monitoring_job,
        IntervalTrigger(minutes=interval),
        id="monitoring",
        name="Docket Monitoring",
        misfire_grace_time=3600,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Monitoring scheduled every %d minutes", interval)


def _add_delivery_job(scheduler: AsyncIOScheduler, config: Config) -> None:
    from docketcc.scheduler.jobs import delivery_job

    interval = config.get("delivery.interval_minutes", 5)
    scheduler.add_job(
        delivery_job,
        IntervalTrigger(minutes=interval),
        id="delivery",
        name="Notification Delivery",
        misfire_grace_time=3600,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Delivery scheduled every %d minutes", interval)


def _add_maintenance_job(scheduler: AsyncIOScheduler, config: Config) -> None:
    from docketcc.scheduler.jobs import maintenance_job

    maintenance_time = config.get("scheduler.maintenance_time", "03:00")
    hour, minute = _parse_time(maintenance_time)
    scheduler.add_job(
        maintenance_job,
        CronTrigger(hour=hour, minute=minute),
        id="maintenance",
        name="Daily Maintenance",
        misfire_grace_time=3600,
        replace_existing=True,
    )
    logger.info("Maintenance scheduled daily at %s", maintenance_time)


def _parse_time(time_str: str) -> tuple[int, int]:
    """Parse 'HH:MM' string to (hour, minute) tuple."""
    parts = time_str.split(":")
    return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
