"""
Tier-based content policy.

Shapes the filing payload stored on a queue row. The shape is fixed when the
row is built, so a queued or historical digest reflects the tier the user had
at that moment, not whatever tier they hold when it is rendered.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..database import parse_iso, utc_now
from ..models import Filing

TIERS = ("free", "trial", "pro")

UPGRADE_CTA = {
    "headline": "Get AI summaries of every filing",
    "body": "Upgrade to Pro for AI-generated summaries, key points, and stakeholder analysis.",
    "path": "/upgrade",
}


def _metadata(filing: Filing) -> Dict[str, Any]:
    return {
        "id": filing.id,
        "docket_number": filing.docket_number,
        "title": filing.title,
        "author": filing.author,
        "filing_type": filing.filing_type,
        "date_received": filing.date_received,
        "filing_url": filing.filing_url,
    }


def _analysis(filing: Filing) -> Dict[str, Any]:
    return {
        "summary": filing.summary,
        "key_points": list(filing.key_points),
        "stakeholders": list(filing.stakeholders),
        "regulatory_impact": filing.regulatory_impact,
        "confidence": filing.confidence,
        "documents_processed": filing.documents_processed,
        "ai_enhanced": filing.ai_enhanced,
        "documents": [
            {"filename": d.filename, "src": d.src} for d in filing.documents if d.downloadable
        ],
    }


def trial_reminder(
    trial_expires_at: Union[str, datetime, None], now: Optional[datetime] = None, app_url: str = ""
) -> Optional[Dict[str, Any]]:
    """Reminder block for trial users, or None if the expiry is unknown."""
    expires = parse_iso(trial_expires_at) if isinstance(trial_expires_at, str) else trial_expires_at
    if expires is None:
        return None
    days_left = max((expires - (now or utc_now())).days, 0)
    return {
        "expires_at": expires.date().isoformat(),
        "days_left": days_left,
        "upgrade_url": f"{app_url}/upgrade",
    }


def build_filing_payload(
    tier: str,
    filing: Filing,
    trial_expires_at: Union[str, datetime, None] = None,
    app_url: str = "",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the per-filing payload for a user of the given tier.

    free: metadata plus an upgrade call-to-action, no AI content.
    trial: metadata and full AI analysis, plus a trial-expiry reminder.
    pro: same as trial without the reminder.
    """
    if tier not in TIERS:
        raise ValueError(f"Unknown tier '{tier}'")

    payload = _metadata(filing)
    if tier == "free":
        payload["upgrade_cta"] = dict(UPGRADE_CTA, url=f"{app_url}{UPGRADE_CTA['path']}")
        return payload

    payload.update(_analysis(filing))
    if tier == "trial":
        payload["trial_reminder"] = trial_reminder(trial_expires_at, now=now, app_url=app_url)
    return payload


def build_queue_payload(
    tier: str,
    filings: List[Filing],
    trial_expires_at: Union[str, datetime, None] = None,
    app_url: str = "",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """The filing_data snapshot stored on a queue row."""
    return {
        "tier": tier,
        "filings": [build_filing_payload(tier, f, trial_expires_at, app_url, now) for f in filings],
    }
