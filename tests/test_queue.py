"""Tests for the persistent notification queue."""

from datetime import datetime, timedelta, timezone

import pytest

T0 = datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc)


def _enqueue(queue, email="a@example.com", digest_type="immediate", filing_ids=("A",), scheduled_for=T0):
    return queue.enqueue(
        email, "23-108", digest_type, list(filing_ids), {"tier": "pro", "filings": []}, scheduled_for=scheduled_for
    )


class TestEnqueue:
    def test_round_trip_decodes_json(self, queue):
        queue_id = _enqueue(queue, email="A@Example.com", filing_ids=("A", "B"))
        row = queue.get(queue_id)
        assert row["status"] == "pending"
        assert row["user_email"] == "a@example.com"
        assert row["filing_ids"] == ["A", "B"]
        assert row["filing_data"] == {"tier": "pro", "filings": []}

    def test_invalid_digest_type(self, queue):
        with pytest.raises(ValueError):
            _enqueue(queue, digest_type="monthly")


class TestClaim:
    def test_only_due_rows(self, queue):
        due = _enqueue(queue)
        _enqueue(queue, scheduled_for=T0 + timedelta(hours=3))
        assert [r["id"] for r in queue.claim_pending(now=T0)] == [due]

    def test_ordered_by_schedule(self, queue):
        later = _enqueue(queue, scheduled_for=T0 - timedelta(minutes=5))
        earlier = _enqueue(queue, scheduled_for=T0 - timedelta(hours=1))
        assert [r["id"] for r in queue.claim_pending(now=T0)] == [earlier, later]

    def test_limit(self, queue):
        for _ in range(5):
            _enqueue(queue)
        assert len(queue.claim_pending(limit=2, now=T0)) == 2
        assert len(queue.claim_pending(limit=10, now=T0)) == 3

    def test_live_lease_blocks_second_claim(self, queue):
        _enqueue(queue)
        assert len(queue.claim_pending(now=T0)) == 1
        assert queue.claim_pending(now=T0 + timedelta(seconds=60)) == []

    def test_expired_lease_is_reclaimable(self, queue):
        queue_id = _enqueue(queue)
        (first,) = queue.claim_pending(now=T0, lease_seconds=300)
        (second,) = queue.claim_pending(now=T0 + timedelta(seconds=301))
        assert second["id"] == queue_id
        assert second["claim_token"] != first["claim_token"]

        # The first worker's lease is gone: its completion is rejected
        assert queue.mark_sent(queue_id, claim_token=first["claim_token"]) is False
        assert queue.mark_sent(queue_id, claim_token=second["claim_token"]) is True


class TestTerminalStates:
    def test_sent_is_terminal(self, queue):
        queue_id = _enqueue(queue)
        assert queue.mark_sent(queue_id, sent_at=T0) is True
        assert queue.mark_failed(queue_id, "late failure") is False
        row = queue.get(queue_id)
        assert row["status"] == "sent"
        assert row["sent_at"] == T0.isoformat()

    def test_failed_is_terminal(self, queue):
        queue_id = _enqueue(queue)
        assert queue.mark_failed(queue_id, "smtp down") is True
        assert queue.mark_sent(queue_id) is False
        assert queue.get(queue_id)["error_message"] == "smtp down"

    def test_finished_rows_never_claimed(self, queue):
        queue.mark_sent(_enqueue(queue))
        queue.mark_failed(_enqueue(queue), "x")
        assert queue.claim_pending(now=T0 + timedelta(days=1)) == []


class TestRequeue:
    def test_failed_row_copied_to_new_pending_row(self, queue):
        queue_id = _enqueue(queue, filing_ids=("A", "B"))
        queue.mark_failed(queue_id, "boom")
        new_id = queue.requeue_failed(queue_id)

        assert new_id != queue_id
        assert queue.get(queue_id)["status"] == "failed"
        copy = queue.get(new_id)
        assert copy["status"] == "pending"
        assert copy["filing_ids"] == ["A", "B"]

    def test_only_failed_rows(self, queue):
        queue_id = _enqueue(queue)
        with pytest.raises(ValueError):
            queue.requeue_failed(queue_id)
        with pytest.raises(LookupError):
            queue.requeue_failed(9999)


class TestLookups:
    def test_queued_filing_ids_spans_statuses(self, queue):
        _enqueue(queue, filing_ids=("A", "B"))
        sent = _enqueue(queue, filing_ids=("C",))
        queue.mark_sent(sent)
        failed = _enqueue(queue, filing_ids=("D",))
        queue.mark_failed(failed, "smtp down")
        assert queue.queued_filing_ids("a@example.com", "23-108") == {"A", "B", "C", "D"}
        assert queue.queued_filing_ids("a@example.com", "11-42") == set()

    def test_rows_referencing(self, queue):
        first = _enqueue(queue, filing_ids=("A", "B"))
        _enqueue(queue, filing_ids=("C",))
        assert [r["id"] for r in queue.rows_referencing("B")] == [first]

    def test_stats(self, queue):
        _enqueue(queue)
        queue.mark_failed(_enqueue(queue), "x")
        stats = queue.get_stats()
        assert stats["pending_total"] == 1
        assert {(r["status"], r["count"]) for r in stats["breakdown"]} == {("pending", 1), ("failed", 1)}
