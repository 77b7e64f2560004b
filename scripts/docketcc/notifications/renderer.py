"""
Email rendering from queue payloads using Jinja2 templates.

Rendering reads only the stored payload, never the user's current tier.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


def build_subject(digest_type: str, filings: List[Dict[str, Any]], dockets: List[str]) -> str:
    count = len(filings)
    if digest_type == "immediate" and filings:
        return f"New filing in FCC docket {filings[0]['docket_number']}: {filings[0]['title'][:80]}"
    if digest_type == "seed_digest":
        return f"Welcome to DocketCC: latest filing in docket {', '.join(dockets)}"
    label = "Weekly" if digest_type == "weekly" else "Daily"
    return f"DocketCC {label} Digest: {count} new filing{'s' if count != 1 else ''}"


def render_digest(
    email: str,
    digest_type: str,
    payload: Dict[str, Any],
    app_url: str = "",
    dockets: Optional[List[str]] = None,
) -> RenderedEmail:
    """
    Render the subject, HTML body and text body for one digest.

    Args:
        email: Recipient address (shown in the footer).
        digest_type: daily, weekly, immediate or seed_digest.
        payload: {"tier": ..., "filings": [...]} as stored on the queue row(s).
        app_url: Base URL for links.
        dockets: Dockets covered; derived from the filings when omitted.
    """
    filings = payload.get("filings") or []
    if dockets is None:
        dockets = sorted({f["docket_number"] for f in filings if f.get("docket_number")})
    subject = build_subject(digest_type, filings, dockets)

    reminder = next((f.get("trial_reminder") for f in filings if f.get("trial_reminder")), None)
    context = {
        "subject": subject,
        "heading": subject,
        "email": email,
        "digest_type": digest_type,
        "tier": payload.get("tier"),
        "filings": filings,
        "dockets": dockets,
        "trial_reminder": reminder,
        "manage_url": f"{app_url}/manage",
    }
    return RenderedEmail(
        subject=subject,
        html=_env.get_template("digest.html").render(**context),
        text=_env.get_template("digest.txt").render(**context),
    )
