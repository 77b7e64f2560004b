"""
Delivery worker: drains the notification queue and sends emails.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..database import utc_now
from ..subscriptions import SubscriptionManager
from ..system_log import SystemLog
from ..users import UserStore
from .emailer import ResendEmailer
from .queue import NotificationQueue
from .renderer import render_digest

logger = logging.getLogger(__name__)

# Digest types whose rows are merged into one email per user
MERGED_DIGESTS = ("daily", "weekly")


@dataclass
class DeliveryResult:
    """Outcome of one delivery run."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"Processed {self.processed} queue rows: {self.sent} sent, {self.failed} failed"


def group_rows(rows: List[Dict[str, Any]]) -> "OrderedDict[Tuple, List[Dict[str, Any]]]":
    """
    Group claimed rows into emails.

    Daily and weekly rows for the same user collapse into one email; every
    immediate or seed row is its own email.
    """
    groups: "OrderedDict[Tuple, List[Dict[str, Any]]]" = OrderedDict()
    for row in rows:
        if row["digest_type"] in MERGED_DIGESTS:
            key = (row["user_email"], row["digest_type"])
        else:
            key = (row["user_email"], row["digest_type"], row["id"])
        groups.setdefault(key, []).append(row)
    return groups


def merge_payloads(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Combine the stored payloads of several rows, dropping repeated filings."""
    tier = None
    filings: List[Dict[str, Any]] = []
    seen = set()
    for row in rows:
        payload = row.get("filing_data") or {}
        tier = tier or payload.get("tier")
        for filing in payload.get("filings") or []:
            if filing.get("id") in seen:
                continue
            seen.add(filing.get("id"))
            filings.append(filing)
    return {"tier": tier, "filings": filings}


class DeliveryWorker:
    """Claims due queue rows, renders them and sends them."""

    def __init__(
        self,
        queue: NotificationQueue,
        users: UserStore,
        subscriptions: SubscriptionManager,
        emailer: ResendEmailer,
        system_log: SystemLog,
        app_url: str = "",
    ) -> None:
        self.queue = queue
        self.users = users
        self.subscriptions = subscriptions
        self.emailer = emailer
        self.system_log = system_log
        self.app_url = app_url

    def run(self, limit: int = 100, now: Optional[datetime] = None) -> DeliveryResult:
        """
        Deliver up to `limit` due rows.

        Each email group succeeds or fails as a unit; one group's failure
        never stops the others. A group counts as sent once the provider
        accepts the email, even if recording the delivery afterwards fails.
        """
        now = now or utc_now()
        result = DeliveryResult()
        rows = self.queue.claim_pending(limit=limit, now=now)
        if not rows:
            logger.info("No pending notifications")
            return result

        result.processed = len(rows)
        for (email, digest_type, *_), group in group_rows(rows).items():
            try:
                user = self._send_group(email, digest_type, group)
            except Exception as e:
                message = f"{email} ({digest_type}): {e}"
                logger.error("Delivery failed for %s", message)
                result.errors.append(message)
                result.failed += len(group)
                for row in group:
                    self.queue.mark_failed(row["id"], str(e), claim_token=row["claim_token"])
                self.system_log.error(
                    "Notification delivery failed",
                    "delivery",
                    details={"email": email, "digest_type": digest_type, "rows": [r["id"] for r in group], "error": str(e)},
                    docket_number=group[0]["docket_number"],
                )
                continue

            result.sent += len(group)
            self._record_sent(user, digest_type, group, now)

        logger.info("%s", result)
        self.system_log.info(
            "Notification delivery completed",
            "delivery",
            details={"processed": result.processed, "sent": result.sent, "failed": result.failed},
        )
        return result

    def _send_group(self, email: str, digest_type: str, group: List[Dict[str, Any]]) -> Dict[str, Any]:
        user = self.users.get_by_email(email)
        if user is None:
            raise LookupError("user not found")

        payload = merge_payloads(group)
        if not payload["filings"]:
            raise ValueError("queue rows carry no filing payload")

        dockets = sorted({row["docket_number"] for row in group})
        rendered = render_digest(email, digest_type, payload, app_url=self.app_url, dockets=dockets)
        self.emailer.send(email, rendered.subject, rendered.html, rendered.text)
        return user

    def _record_sent(self, user: Dict[str, Any], digest_type: str, group: List[Dict[str, Any]], now: datetime) -> None:
        """Bookkeeping after the provider accepted an email. Failures here are logged, never retried."""
        email = user["email"]
        try:
            for row in group:
                if not self.queue.mark_sent(row["id"], sent_at=now, claim_token=row["claim_token"]):
                    # Lease expired and another worker reclaimed the row
                    logger.warning(
                        "Queue row %s was no longer ours after sending to %s; possible duplicate email", row["id"], email
                    )
                    self.system_log.warning(
                        "Queue row lost its claim before being marked sent",
                        "delivery",
                        details={"queue_id": row["id"], "email": email},
                        docket_number=row["docket_number"],
                    )

            if digest_type != "seed_digest":
                filing_ids = [fid for row in group for fid in row["filing_ids"]]
                self.users.mark_notified(user["id"], filing_ids, digest_type)
            for docket in sorted({row["docket_number"] for row in group}):
                self.subscriptions.touch_last_notified(user["id"], docket, now)
        except Exception as e:
            logger.warning("Email to %s was sent but recording it failed: %s", email, e)
            self.system_log.warning(
                "Post-send bookkeeping failed",
                "delivery",
                details={"email": email, "digest_type": digest_type, "rows": [r["id"] for r in group], "error": str(e)},
                docket_number=group[0]["docket_number"],
            )
