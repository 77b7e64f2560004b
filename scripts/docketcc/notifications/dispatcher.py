"""
Matches stored filings to subscribers and enqueues notifications.

Filings are written before any queue rows that reference them. If a run
stops in between, or the per-run row limit defers some subscribers,
reconcile() finds the processed filings those subscribers were never queued
for and backfills them.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..database import utc_now
from ..filing_store import FilingStore
from ..models import Filing
from ..scheduling import DEFAULT_TIMEZONE, next_digest_time
from ..subscriptions import SubscriptionManager
from ..system_log import SystemLog
from ..users import UserStore
from .content import build_queue_payload
from .queue import NotificationQueue

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Creates queue rows for new filings, one per (subscriber, docket)."""

    def __init__(
        self,
        queue: NotificationQueue,
        subscriptions: SubscriptionManager,
        users: UserStore,
        filing_store: FilingStore,
        system_log: SystemLog,
        app_url: str = "",
        tz_name: str = DEFAULT_TIMEZONE,
        max_notifications_per_run: int = 100,
        max_filings_per_notification: int = 25,
    ) -> None:
        self.queue = queue
        self.subscriptions = subscriptions
        self.users = users
        self.filing_store = filing_store
        self.system_log = system_log
        self.app_url = app_url
        self.tz_name = tz_name
        self.max_notifications_per_run = max_notifications_per_run
        self.max_filings_per_notification = max_filings_per_notification

    def queue_for_filings(
        self,
        docket_number: str,
        filings: List[Filing],
        now: Optional[datetime] = None,
        max_rows: Optional[int] = None,
    ) -> int:
        """
        Enqueue notifications for a docket's new filings.

        Filings a subscriber has already been sent, or that already appear in
        one of their queue rows, are skipped. Each subscriber's payload is shaped
        by their tier at this moment.

        Args:
            docket_number: Docket the filings belong to.
            filings: Newly stored (and possibly enriched) filings, newest first.
            now: Reference time for scheduling.
            max_rows: Cap on rows created by this call; defaults to the per-run limit.

        Returns:
            Number of queue rows created.
        """
        if not filings:
            return 0
        now = now or utc_now()
        budget = self.max_notifications_per_run if max_rows is None else max_rows
        queued = 0

        for subscriber in self.subscriptions.get_subscribers(docket_number):
            if queued >= budget:
                logger.warning(
                    "Notification limit (%d) reached for docket %s; remaining subscribers deferred to reconciliation",
                    budget,
                    docket_number,
                )
                break
            try:
                if self._queue_for_subscriber(subscriber, docket_number, filings, now):
                    queued += 1
            except Exception as e:
                logger.warning("Failed to queue %s for %s: %s", docket_number, subscriber["email"], e)
                self.system_log.warning(
                    "Failed to queue notification",
                    "notifications",
                    details={"email": subscriber["email"], "error": str(e)},
                    docket_number=docket_number,
                )

        if queued:
            self.system_log.info(
                "Notification queuing completed",
                "notifications",
                details={"queued": queued, "filings": len(filings)},
                docket_number=docket_number,
            )
        return queued

    def _queue_for_subscriber(
        self, subscriber: Dict, docket_number: str, filings: List[Filing], now: datetime
    ) -> bool:
        ids = [f.id for f in filings]
        skip = self.users.notified_filing_ids(subscriber["user_id"], ids)
        skip |= self.queue.queued_filing_ids(subscriber["email"], docket_number)
        fresh = [f for f in filings if f.id not in skip][: self.max_filings_per_notification]
        if not fresh:
            return False

        digest_type = subscriber["frequency"]
        payload = build_queue_payload(
            subscriber["tier"], fresh, subscriber.get("trial_expires_at"), app_url=self.app_url, now=now
        )
        self.queue.enqueue(
            user_email=subscriber["email"],
            docket_number=docket_number,
            digest_type=digest_type,
            filing_ids=[f.id for f in fresh],
            filing_data=payload,
            scheduled_for=next_digest_time(digest_type, now, self.tz_name),
        )
        return True

    def reconcile(
        self, since_hours: int = 24, now: Optional[datetime] = None, max_rows: Optional[int] = None
    ) -> int:
        """
        Backfill queue rows for subscribers a processed filing never reached.

        Subscribers who already hold a row for a filing are skipped by
        queue_for_filings, so only the missing ones are queued.

        Args:
            since_hours: How far back to look for processed filings.
            now: Reference time.
            max_rows: Cap on rows created; defaults to the per-run limit.

        Returns:
            Number of filings that got at least one new queue row.
        """
        now = now or utc_now()
        remaining = self.max_notifications_per_run if max_rows is None else max_rows
        if remaining <= 0:
            return 0
        orphans = self.filing_store.find_unqueued(now - timedelta(hours=since_hours))
        if not orphans:
            return 0

        by_docket: Dict[str, List[Filing]] = defaultdict(list)
        for filing in orphans:
            by_docket[filing.docket_number].append(filing)

        backfilled = 0
        for docket_number, filings in by_docket.items():
            if remaining <= 0:
                break
            queued = self.queue_for_filings(docket_number, filings, now=now, max_rows=remaining)
            if queued:
                remaining -= queued
                backfilled += len(filings)

        if backfilled:
            logger.info("Reconciliation backfilled notifications for %d filings", backfilled)
            self.system_log.warning(
                "Backfilled notifications for unqueued filings",
                "notifications",
                details={"filings": backfilled, "candidates": len(orphans)},
            )
        return backfilled
