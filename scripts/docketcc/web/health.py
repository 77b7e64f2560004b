"""
Liveness endpoint: database reachability, queue backlog and scheduler jobs.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from docketcc.services import Services
from docketcc.web.dependencies import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, services: Services = Depends(get_services)):
    """
    Report whether the service can do its job.

    Status is "degraded" when the database cannot be queried; the queue
    backlog is only reported when it can.
    """
    started_at = getattr(request.app.state, "started_at", None)
    scheduler = getattr(request.app.state, "scheduler", None)

    database = services.health.check_database()
    pending = None
    if database["status"] != "error":
        pending = services.queue.get_stats()["pending_total"]

    jobs = []
    if scheduler:
        jobs = [
            {"id": job.id, "next_run": str(job.next_run_time) if job.next_run_time else None}
            for job in scheduler.get_jobs()
        ]

    return {
        "status": "degraded" if database["status"] == "error" else "healthy",
        "uptime_seconds": (datetime.now() - started_at).total_seconds() if started_at else None,
        "database": database,
        "queue": {"pending": pending},
        "scheduler": {"running": scheduler is not None and scheduler.running, "jobs": jobs},
    }
