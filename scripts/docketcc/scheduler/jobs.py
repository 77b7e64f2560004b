"""
Scheduled job definitions for the DocketCC pipeline.

All jobs are async functions that wrap synchronous pipeline calls
in asyncio.to_thread(). Each run is self-contained: state lives in the
database, not in the process.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


async def monitoring_job():
    """Poll active dockets according to the time-of-day strategy."""
    logger.info("Monitoring job started")

    def _run():
        from docketcc.services import get_services

        return get_services().pipeline.run()

    result = await asyncio.to_thread(_run)

    if result is not None:
        logger.info("Monitoring job complete: %s", result)


async def delivery_job():
    """Drain due notifications from the queue."""
    logger.info("Delivery job started")

    def _run():
        from docketcc.services import get_services

        services = get_services()
        limit = services.config.get("delivery.batch_limit", 100)
        return services.delivery.run(limit=limit)

    result = await asyncio.to_thread(_run)

    if result is not None:
        logger.info("Delivery job complete: %s", result)
        if result.errors:
            logger.warning("Delivery errors: %s", "; ".join(result.errors[:5]))


async def maintenance_job():
    """Daily housekeeping: expire trials, prune old logs and filings."""
    logger.info("Maintenance job started")

    def _run():
        from docketcc.services import get_services

        services = get_services()
        cfg = services.config
        return {
            "trials_expired": services.users.handle_trial_expirations(),
            "logs_removed": services.system_log.cleanup_old_logs(cfg.get("retention.logs_days", 30)),
            "filings_removed": services.filing_store.cleanup_old(cfg.get("retention.filings_days", 365)),
        }

    result = await asyncio.to_thread(_run)

    if result:
        logger.info(
            "Maintenance complete: %d trials expired, %d logs removed, %d filings removed",
            result["trials_expired"],
            result["logs_removed"],
            result["filings_removed"],
        )
