"""Tests for the delivery worker with a mocked email provider."""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from docketcc.exceptions import EmailDeliveryError
from docketcc.notifications.content import build_queue_payload
from docketcc.notifications.delivery import DeliveryWorker, group_rows, merge_payloads

T0 = datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def emailer():
    mock = MagicMock()
    mock.send.return_value = "msg_123"
    return mock


@pytest.fixture
def worker(queue, users, subscriptions, emailer, system_log):
    return DeliveryWorker(queue, users, subscriptions, emailer, system_log, app_url="https://docketcc.test")


def _enqueue(queue, make_filing, email, docket="23-108", digest_type="daily", ids=("A",), tier="pro"):
    filings = [make_filing(i, docket_number=docket) for i in ids]
    return queue.enqueue(
        email, docket, digest_type, list(ids), build_queue_payload(tier, filings), scheduled_for=T0
    )


class TestRun:
    def test_success_marks_sent_and_records_notifications(self, worker, queue, users, subscriptions, emailer, make_filing):
        result = subscriptions.subscribe("a@example.com", "23-108")
        queue_id = _enqueue(queue, make_filing, "a@example.com", ids=("A", "B"))

        outcome = worker.run(now=T0)

        assert (outcome.processed, outcome.sent, outcome.failed) == (1, 1, 0)
        assert queue.get(queue_id)["status"] == "sent"
        assert users.notified_filing_ids(result.user["id"], ["A", "B"]) == {"A", "B"}
        assert subscriptions.list_for_user("a@example.com")[0]["last_notified"] == T0.isoformat()
        to, subject, html, text = emailer.send.call_args.args
        assert to == "a@example.com"
        assert subject == "DocketCC Daily Digest: 2 new filings"

    def test_provider_failure_marks_failed(self, worker, queue, users, emailer, system_log, make_filing):
        users.create_or_get("a@example.com")
        queue_id = _enqueue(queue, make_filing, "a@example.com")
        emailer.send.side_effect = EmailDeliveryError("Resend rejected email: HTTP 422")

        outcome = worker.run(now=T0)

        assert outcome.failed == 1
        row = queue.get(queue_id)
        assert row["status"] == "failed"
        assert "HTTP 422" in row["error_message"]
        assert system_log.get_logs(level="error", component="delivery")

    def test_missing_user_fails_row(self, worker, queue, emailer, make_filing):
        queue_id = _enqueue(queue, make_filing, "ghost@example.com")
        worker.run(now=T0)
        assert queue.get(queue_id)["error_message"] == "user not found"
        emailer.send.assert_not_called()

    def test_daily_rows_for_same_user_merge_into_one_email(self, worker, queue, users, emailer, make_filing):
        users.create_or_get("a@example.com")
        first = _enqueue(queue, make_filing, "a@example.com", docket="23-108", ids=("A",))
        second = _enqueue(queue, make_filing, "a@example.com", docket="11-42", ids=("B",))

        outcome = worker.run(now=T0)

        assert emailer.send.call_count == 1
        assert outcome.sent == 2
        assert queue.get(first)["status"] == queue.get(second)["status"] == "sent"

    def test_one_failure_does_not_stop_others(self, worker, queue, users, emailer, make_filing):
        users.create_or_get("a@example.com")
        users.create_or_get("b@example.com")
        bad = _enqueue(queue, make_filing, "a@example.com", digest_type="immediate")
        good = _enqueue(queue, make_filing, "b@example.com", digest_type="immediate")
        def send(to, *args):
            if to == "a@example.com":
                raise EmailDeliveryError("down")
            return "ok"

        emailer.send.side_effect = send

        worker.run(now=T0)

        assert queue.get(bad)["status"] == "failed"
        assert queue.get(good)["status"] == "sent"

    def test_seed_digest_not_recorded_as_notified(self, worker, queue, users, emailer, make_filing):
        user = users.create_or_get("a@example.com")
        _enqueue(queue, make_filing, "a@example.com", digest_type="seed_digest", ids=("A",))
        worker.run(now=T0)
        assert users.has_been_notified(user["id"], "A") is False

    def test_nothing_due(self, worker, emailer):
        assert worker.run(now=T0).processed == 0
        emailer.send.assert_not_called()


class TestGrouping:
    def test_immediate_rows_stay_separate(self):
        rows = [
            {"id": 1, "user_email": "a@example.com", "digest_type": "immediate"},
            {"id": 2, "user_email": "a@example.com", "digest_type": "immediate"},
            {"id": 3, "user_email": "a@example.com", "digest_type": "weekly"},
            {"id": 4, "user_email": "a@example.com", "digest_type": "weekly"},
        ]
        assert [len(g) for g in group_rows(rows).values()] == [1, 1, 2]

    def test_merge_drops_repeated_filings(self):
        rows = [
            {"filing_data": {"tier": "pro", "filings": [{"id": "A"}, {"id": "B"}]}},
            {"filing_data": {"tier": "pro", "filings": [{"id": "B"}, {"id": "C"}]}},
        ]
        merged = merge_payloads(rows)
        assert merged["tier"] == "pro"
        assert [f["id"] for f in merged["filings"]] == ["A", "B", "C"]


class TestAfterSend:
    def test_bookkeeping_failure_still_counts_as_sent(self, worker, queue, users, emailer, system_log, make_filing, monkeypatch):
        users.create_or_get("a@example.com")
        queue_id = _enqueue(queue, make_filing, "a@example.com")

        def locked(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(users, "mark_notified", locked)

        outcome = worker.run(now=T0)

        assert (outcome.sent, outcome.failed, outcome.errors) == (1, 0, [])
        assert emailer.send.call_count == 1
        assert queue.get(queue_id)["status"] == "sent"
        assert not system_log.get_logs(level="error", component="delivery")
        (warning,) = system_log.get_logs(level="warning", component="delivery")
        assert warning["message"] == "Post-send bookkeeping failed"
        assert "database is locked" in warning["details"]["error"]

    def test_lost_claim_is_reported(self, worker, queue, users, emailer, system_log, make_filing, caplog):
        users.create_or_get("a@example.com")
        queue_id = _enqueue(queue, make_filing, "a@example.com", digest_type="immediate")

        def send_while_reclaimed(*args):
            # A second worker picks the row up after our lease ran out
            queue.claim_pending(now=T0 + timedelta(days=1), claim_token="other-worker")
            return "msg_123"

        emailer.send.side_effect = send_while_reclaimed

        with caplog.at_level(logging.WARNING, logger="docketcc.notifications.delivery"):
            outcome = worker.run(now=T0)

        assert outcome.sent == 1
        row = queue.get(queue_id)
        assert row["status"] == "pending"
        assert row["claim_token"] == "other-worker"
        assert "possible duplicate email" in caplog.text
        messages = [e["message"] for e in system_log.get_logs(level="warning", component="delivery")]
        assert messages == ["Queue row lost its claim before being marked sent"]
