"""
Admin routes (monitoring stats, docket health, logs, queue, manual trigger).

Every route requires the X-Admin-Secret header.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from docketcc.database import USER_TIERS
from docketcc.exceptions import InvalidDocketError
from docketcc.monitoring import collect_stats
from docketcc.services import Services
from docketcc.web.dependencies import get_services, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


class TriggerRequest(BaseModel):
    docket_number: str


class TierUpdate(BaseModel):
    tier: str


@router.get("/monitoring/stats")
async def monitoring_stats(services: Services = Depends(get_services)):
    """Dashboard numbers across dockets, filings, queue, users and subscriptions."""
    return collect_stats(
        services.registry, services.filing_store, services.queue, services.users, services.subscriptions
    )


@router.get("/monitoring/dockets")
async def monitoring_dockets(services: Services = Depends(get_services)):
    """Every docket with its derived health."""
    return {"dockets": services.registry.list_with_health()}


@router.get("/monitoring/logs")
async def monitoring_logs(
    level: Optional[str] = None,
    component: Optional[str] = None,
    docket_number: Optional[str] = None,
    limit: int = 100,
    services: Services = Depends(get_services),
):
    """Recent system log entries."""
    logs = services.system_log.get_logs(
        level=level, component=component, docket_number=docket_number, limit=min(max(limit, 1), 500)
    )
    return {"logs": logs}


@router.get("/monitoring/queue")
async def monitoring_queue(
    status: Optional[str] = None,
    limit: int = 50,
    services: Services = Depends(get_services),
):
    """Recent notification queue rows."""
    return {"items": services.queue.list_recent(limit=min(max(limit, 1), 500), status=status)}


@router.get("/monitoring/health")
def monitoring_health(services: Services = Depends(get_services)):
    """Database, ECFS and activity checks."""
    return services.health.check()


@router.post("/trigger")
def trigger_docket(body: TriggerRequest, services: Services = Depends(get_services)):
    """Check one docket for new filings right now."""
    try:
        outcome = services.pipeline.trigger_docket(body.docket_number)
    except InvalidDocketError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Manual trigger for %s: %s", body.docket_number, outcome)
    return asdict(outcome)


@router.post("/queue/{queue_id}/requeue")
async def requeue(queue_id: int, services: Services = Depends(get_services)):
    """Queue a fresh pending copy of a failed notification."""
    try:
        new_id = services.queue.requeue_failed(queue_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return services.queue.get(new_id)


@router.patch("/users/{user_id}/tier")
async def update_user_tier(user_id: int, body: TierUpdate, services: Services = Depends(get_services)):
    """Move a user to another tier."""
    if body.tier not in USER_TIERS:
        raise HTTPException(status_code=400, detail=f"Invalid tier. Valid: {', '.join(USER_TIERS)}")
    if not services.users.update_tier(user_id, body.tier):
        raise HTTPException(status_code=404, detail="User not found")
    return services.users.get_by_id(user_id)
