"""
Subscription routes (subscribe, unsubscribe, list).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from docketcc.exceptions import InvalidDocketError, SubscriptionLimitError
from docketcc.services import Services
from docketcc.web.dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])


class SubscribeRequest(BaseModel):
    email: str
    docket_number: str
    frequency: str = "daily"


class UnsubscribeRequest(BaseModel):
    email: str
    docket_number: str


@router.post("/subscriptions", status_code=201)
def subscribe(body: SubscribeRequest, services: Services = Depends(get_services)):
    """Subscribe an email to a docket and queue its seed digest."""
    try:
        result = services.subscriptions.subscribe(body.email, body.docket_number, body.frequency)
    except (InvalidDocketError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SubscriptionLimitError as e:
        raise HTTPException(status_code=409, detail=str(e))

    seed_queue_id = None
    try:
        seed_queue_id = services.seeds.seed_after_subscribe(result)
    except Exception as e:
        # Left flagged needs_seed; the next monitoring run retries it
        logger.warning("Seed digest for %s on %s deferred: %s", body.email, body.docket_number, e)

    return {
        "subscription": result.subscription,
        "created": result.created,
        "replaced": result.replaced,
        "tier": result.user["tier"],
        "seed_queued": seed_queue_id is not None,
    }


@router.delete("/subscriptions")
async def unsubscribe(body: UnsubscribeRequest, services: Services = Depends(get_services)):
    """Remove a subscription."""
    removed = services.subscriptions.unsubscribe(body.email, body.docket_number.strip())
    if not removed:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"removed": True}


@router.get("/subscriptions")
async def list_subscriptions(email: str, services: Services = Depends(get_services)):
    """List an email's subscriptions."""
    return {"email": email.strip().lower(), "subscriptions": services.subscriptions.list_for_user(email)}
