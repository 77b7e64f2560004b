"""Tests for matching new filings to subscribers."""

from datetime import datetime, timezone

import pytest
from docketcc.notifications.dispatcher import NotificationDispatcher

NOW = datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def dispatcher(queue, subscriptions, users, filing_store, system_log):
    return NotificationDispatcher(queue, subscriptions, users, filing_store, system_log, app_url="https://docketcc.test")


def _stored(filing_store, make_filing, *ids, status="completed"):
    filings = [make_filing(i) for i in ids]
    filing_store.store_new(filings)
    for filing in filings:
        filing_store.update_status(filing.id, status)
        filing.status = status
    return filings


class TestQueueForFilings:
    def test_one_row_per_subscriber_with_tier_payload(self, dispatcher, subscriptions, queue, filing_store, make_filing, free_user):
        subscriptions.subscribe("trial@example.com", "23-108", "immediate")
        subscriptions.subscribe(free_user["email"], "23-108", "daily")
        filings = _stored(filing_store, make_filing, "A", "B")

        assert dispatcher.queue_for_filings("23-108", filings, now=NOW) == 2
        rows = {r["user_email"]: r for r in queue.list_recent()}
        assert rows["trial@example.com"]["digest_type"] == "immediate"
        assert rows["trial@example.com"]["filing_data"]["tier"] == "trial"
        assert rows[free_user["email"]]["filing_data"]["tier"] == "free"
        assert rows[free_user["email"]]["filing_ids"] == ["A", "B"]
        # Daily digests wait for 13:00 ET
        assert rows[free_user["email"]]["scheduled_for"] == "2024-03-14T17:00:00+00:00"

    def test_skips_already_notified_and_pending(self, dispatcher, subscriptions, users, queue, filing_store, make_filing):
        result = subscriptions.subscribe("a@example.com", "23-108")
        users.mark_notified(result.user["id"], ["A"], "daily")
        filings = _stored(filing_store, make_filing, "A", "B")

        assert dispatcher.queue_for_filings("23-108", filings, now=NOW) == 1
        assert queue.list_recent()[0]["filing_ids"] == ["B"]
        # B is now pending for this user; a second pass creates nothing
        assert dispatcher.queue_for_filings("23-108", filings, now=NOW) == 0

    def test_respects_row_budget(self, dispatcher, subscriptions, filing_store, make_filing):
        for n in range(3):
            subscriptions.subscribe(f"user{n}@example.com", "23-108")
        filings = _stored(filing_store, make_filing, "A")
        assert dispatcher.queue_for_filings("23-108", filings, now=NOW, max_rows=2) == 2

    def test_caps_filings_per_notification(self, queue, subscriptions, users, filing_store, system_log, make_filing):
        dispatcher = NotificationDispatcher(
            queue, subscriptions, users, filing_store, system_log, max_filings_per_notification=2
        )
        subscriptions.subscribe("a@example.com", "23-108")
        filings = _stored(filing_store, make_filing, "A", "B", "C")
        dispatcher.queue_for_filings("23-108", filings, now=NOW)
        assert queue.list_recent()[0]["filing_ids"] == ["A", "B"]

    def test_no_subscribers(self, dispatcher, filing_store, make_filing):
        assert dispatcher.queue_for_filings("23-108", _stored(filing_store, make_filing, "A"), now=NOW) == 0


class TestReconcile:
    def test_backfills_then_noop(self, dispatcher, subscriptions, filing_store, queue, make_filing):
        subscriptions.subscribe("a@example.com", "23-108", "immediate")
        _stored(filing_store, make_filing, "A", "B")
        _stored(filing_store, make_filing, "C", status="pending")

        assert dispatcher.reconcile(since_hours=24) == 2
        (row,) = queue.list_recent()
        assert sorted(row["filing_ids"]) == ["A", "B"]

        assert dispatcher.reconcile(since_hours=24) == 0
        assert len(queue.list_recent()) == 1

    def test_logs_backfill(self, dispatcher, subscriptions, filing_store, system_log, make_filing):
        subscriptions.subscribe("a@example.com", "23-108")
        _stored(filing_store, make_filing, "A")
        dispatcher.reconcile()
        messages = [e["message"] for e in system_log.get_logs(component="notifications")]
        assert "Backfilled notifications for unqueued filings" in messages

    def test_queues_subscribers_deferred_by_row_limit(self, queue, subscriptions, users, filing_store, system_log, make_filing):
        dispatcher = NotificationDispatcher(
            queue, subscriptions, users, filing_store, system_log, max_notifications_per_run=2
        )
        for n in range(3):
            subscriptions.subscribe(f"user{n}@example.com", "23-108", "immediate")
        filings = _stored(filing_store, make_filing, "A")

        assert dispatcher.queue_for_filings("23-108", filings) == 2
        assert dispatcher.reconcile(since_hours=24) == 1
        rows = queue.list_recent()
        assert sorted(r["user_email"] for r in rows) == [f"user{n}@example.com" for n in range(3)]
        assert all(r["filing_ids"] == ["A"] for r in rows)

        assert dispatcher.reconcile(since_hours=24) == 0
        assert len(queue.list_recent()) == 3

    def test_respects_remaining_budget(self, dispatcher, subscriptions, filing_store, queue, make_filing):
        for n in range(3):
            subscriptions.subscribe(f"user{n}@example.com", "23-108")
        _stored(filing_store, make_filing, "A")

        assert dispatcher.reconcile(since_hours=24, max_rows=0) == 0
        assert queue.list_recent() == []
        assert dispatcher.reconcile(since_hours=24, max_rows=1) == 1
        assert len(queue.list_recent()) == 1
