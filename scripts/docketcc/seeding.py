"""
Seed digests: the first catch-up email a new subscriber receives.
"""

import logging
from typing import Any, Dict, Optional

from .enrichment.enricher import FilingEnricher
from .exceptions import DocketCCError
from .filing_store import FilingStore
from .notifications.content import build_queue_payload
from .notifications.queue import NotificationQueue
from .sources.base import FilingSource
from .subscriptions import SubscribeResult, SubscriptionManager
from .system_log import SystemLog

logger = logging.getLogger(__name__)


class SeedService:
    """Queues a seed digest with the docket's latest filing for new subscriptions."""

    def __init__(
        self,
        subscriptions: SubscriptionManager,
        filing_store: FilingStore,
        queue: NotificationQueue,
        source: FilingSource,
        system_log: SystemLog,
        enricher: Optional[FilingEnricher] = None,
        app_url: str = "",
    ) -> None:
        self.subscriptions = subscriptions
        self.filing_store = filing_store
        self.queue = queue
        self.source = source
        self.system_log = system_log
        self.enricher = enricher
        self.app_url = app_url

    def handle_new_subscription(self, subscription: Dict[str, Any]) -> Optional[int]:
        """
        Queue a seed digest for one subscription.

        Args:
            subscription: Row from SubscriptionManager.get_needing_seed or
                get_subscribers (needs docket_number, email, tier,
                trial_expires_at and subscription_id).

        Returns:
            Queue row id, or None if no filing could be found yet (the
            subscription keeps needs_seed and is retried on the next run).
        """
        docket_number = subscription["docket_number"]
        latest = self.filing_store.get_recent(docket_number, limit=1)

        if not latest:
            try:
                fetched = self.source.fetch_latest(docket_number, count=1)
            except DocketCCError as e:
                logger.warning("Seed fetch failed for docket %s: %s", docket_number, e)
                self.system_log.warning(
                    "Seed fetch failed", "seeding", details={"error": str(e)}, docket_number=docket_number
                )
                return None
            if not fetched:
                logger.info("Docket %s has no filings yet; seed deferred", docket_number)
                return None
            self.filing_store.store_new(fetched)
            if self.enricher is not None:
                self.enricher.enrich_and_store(fetched[0])
            latest = self.filing_store.get_recent(docket_number, limit=1)
            if not latest:
                return None

        filing = latest[0]
        payload = build_queue_payload(
            subscription["tier"], [filing], subscription.get("trial_expires_at"), app_url=self.app_url
        )
        queue_id = self.queue.enqueue(
            user_email=subscription["email"],
            docket_number=docket_number,
            digest_type="seed_digest",
            filing_ids=[filing.id],
            filing_data=payload,
        )
        self.subscriptions.mark_seeded(subscription["subscription_id"])
        logger.info("Queued seed digest %d for %s on %s", queue_id, subscription["email"], docket_number)
        return queue_id

    def seed_after_subscribe(self, result: SubscribeResult) -> Optional[int]:
        """Seed a subscription straight after SubscriptionManager.subscribe created it."""
        if not result.created:
            return None
        return self.handle_new_subscription(
            {
                "subscription_id": result.subscription["id"],
                "docket_number": result.subscription["docket_number"],
                "email": result.user["email"],
                "tier": result.user["tier"],
                "trial_expires_at": result.user.get("trial_expires_at"),
            }
        )

    def process_pending_seeds(self, limit: int = 50) -> int:
        """Seed every subscription still flagged needs_seed. Returns seeds queued."""
        queued = 0
        for subscription in self.subscriptions.get_needing_seed(limit):
            try:
                if self.handle_new_subscription(subscription) is not None:
                    queued += 1
            except Exception as e:
                logger.warning("Seeding failed for subscription %s: %s", subscription["subscription_id"], e)
                self.system_log.warning(
                    "Seeding failed",
                    "seeding",
                    details={"subscription_id": subscription["subscription_id"], "error": str(e)},
                    docket_number=subscription["docket_number"],
                )
        return queued
