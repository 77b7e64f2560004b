"""
FastAPI lifespan context manager.

Starts/stops APScheduler alongside the web server. The scheduler is optional:
if it is disabled in config it is skipped.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup/shutdown of the scheduler."""
    app.state.started_at = datetime.now()
    app.state.scheduler = None

    scheduler = _start_scheduler()
    if scheduler:
        app.state.scheduler = scheduler

    logger.info("DocketCC started: scheduler=%s", scheduler is not None)

    yield

    if app.state.scheduler:
        try:
            app.state.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        except Exception:
            logger.exception("Error stopping scheduler")

    logger.info("DocketCC shutdown complete")


def _start_scheduler():
    """Start APScheduler if enabled in config."""
    try:
        from docketcc.config import config

        if not config.get("scheduler.enabled", False):
            logger.info("Scheduler disabled in config")
            return None

        from docketcc.scheduler.setup import create_scheduler

        scheduler = create_scheduler(config)
        scheduler.start()
        logger.info("APScheduler started with %d jobs", len(scheduler.get_jobs()))
        return scheduler
    except Exception:
        logger.exception("Failed to start scheduler")
        return None
