"""
APScheduler error handler: logs failures and records them in system_logs.
"""

import logging

logger = logging.getLogger(__name__)


def job_error_listener(event):
    """Handle APScheduler EVENT_JOB_ERROR events.

    Logs the error and writes a system log entry so failures show up on the
    monitoring surface.
    """
    job_id = event.job_id
    exception = event.exception
    traceback_str = str(event.traceback) if event.traceback else ""

    logger.error(
        "Scheduled job '%s' failed: %s\n%s",
        job_id,
        exception,
        traceback_str,
    )

    try:
        from docketcc.services import get_services

        get_services().system_log.error(
            f"Scheduled job '{job_id}' failed",
            "scheduler",
            details={"error": str(exception), "traceback": traceback_str[:1000]},
        )
    except Exception:
        logger.debug("Failed to record job error in system log", exc_info=True)
