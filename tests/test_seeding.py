"""Tests for seed digests sent to new subscribers."""

from unittest.mock import MagicMock

import pytest
from docketcc.exceptions import ECFSError
from docketcc.seeding import SeedService


@pytest.fixture
def source():
    mock = MagicMock()
    mock.fetch_latest.return_value = []
    return mock


@pytest.fixture
def seeds(subscriptions, filing_store, queue, source, system_log):
    return SeedService(subscriptions, filing_store, queue, source, system_log, app_url="https://docketcc.test")


class TestSeedAfterSubscribe:
    def test_uses_stored_latest_filing(self, seeds, subscriptions, filing_store, queue, source, make_filing):
        filing_store.store_new(
            [
                make_filing("old", date_received="2024-03-01T00:00:00+00:00"),
                make_filing("new", date_received="2024-03-12T00:00:00+00:00"),
            ]
        )
        result = subscriptions.subscribe("a@example.com", "23-108")

        queue_id = seeds.seed_after_subscribe(result)

        row = queue.get(queue_id)
        assert row["digest_type"] == "seed_digest"
        assert row["filing_ids"] == ["new"]
        assert row["filing_data"]["tier"] == "trial"
        assert subscriptions.get_needing_seed() == []
        source.fetch_latest.assert_not_called()

    def test_fetches_when_nothing_stored(self, seeds, subscriptions, filing_store, queue, source, make_filing):
        source.fetch_latest.return_value = [make_filing("fresh")]
        result = subscriptions.subscribe("a@example.com", "23-108")

        queue_id = seeds.seed_after_subscribe(result)

        assert filing_store.get("fresh") is not None
        assert queue.get(queue_id)["filing_ids"] == ["fresh"]

    def test_empty_docket_defers(self, seeds, subscriptions, queue):
        result = subscriptions.subscribe("a@example.com", "23-108")
        assert seeds.seed_after_subscribe(result) is None
        assert len(subscriptions.get_needing_seed()) == 1
        assert queue.list_recent() == []

    def test_source_failure_defers_and_logs(self, seeds, subscriptions, source, system_log):
        source.fetch_latest.side_effect = ECFSError("Timeout fetching docket 23-108", docket_number="23-108")
        result = subscriptions.subscribe("a@example.com", "23-108")
        assert seeds.seed_after_subscribe(result) is None
        assert system_log.get_logs(level="warning", component="seeding")

    def test_resubscribe_does_not_seed(self, seeds, subscriptions, filing_store, make_filing):
        filing_store.store_new([make_filing("A")])
        subscriptions.subscribe("a@example.com", "23-108")
        again = subscriptions.subscribe("a@example.com", "23-108", "weekly")
        assert seeds.seed_after_subscribe(again) is None


class TestProcessPendingSeeds:
    def test_retries_deferred_seeds(self, seeds, subscriptions, source, make_filing):
        subscriptions.subscribe("a@example.com", "23-108")
        subscriptions.subscribe("b@example.com", "11-42")
        source.fetch_latest.side_effect = lambda docket, count=1: (
            [make_filing("X", docket_number=docket)] if docket == "23-108" else []
        )

        assert seeds.process_pending_seeds() == 1
        assert [s["docket_number"] for s in subscriptions.get_needing_seed()] == ["11-42"]
