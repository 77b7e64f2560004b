"""Tests for tier-based payloads and digest rendering."""

from datetime import datetime, timezone

import pytest
from docketcc.notifications.content import build_filing_payload, build_queue_payload, trial_reminder
from docketcc.notifications.renderer import build_subject, render_digest

NOW = datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def enriched(make_filing):
    filing = make_filing("A", with_pdf=True)
    filing.summary = "AT&T asks the FCC to delay the compliance date."
    filing.key_points = ["Six month extension requested"]
    filing.stakeholders = ["Primary: AT&T"]
    filing.confidence = "High"
    filing.ai_enhanced = True
    return filing


class TestFilingPayload:
    def test_free_tier_has_no_ai_content(self, enriched):
        payload = build_filing_payload("free", enriched, app_url="https://docketcc.test")
        assert payload["title"] == enriched.title
        assert "summary" not in payload
        assert "key_points" not in payload
        assert payload["upgrade_cta"]["url"] == "https://docketcc.test/upgrade"

    def test_trial_tier_has_analysis_and_reminder(self, enriched):
        payload = build_filing_payload("trial", enriched, "2024-03-20T18:00:00+00:00", now=NOW)
        assert payload["summary"] == enriched.summary
        assert payload["key_points"] == ["Six month extension requested"]
        assert payload["trial_reminder"]["days_left"] == 7
        assert "upgrade_cta" not in payload

    def test_pro_tier_has_analysis_without_reminder(self, enriched):
        payload = build_filing_payload("pro", enriched)
        assert payload["summary"] == enriched.summary
        assert payload["documents"][0]["filename"] == "comments.pdf"
        assert "trial_reminder" not in payload

    def test_unknown_tier(self, enriched):
        with pytest.raises(ValueError):
            build_filing_payload("gold", enriched)

    def test_queue_payload_records_tier(self, enriched):
        payload = build_queue_payload("free", [enriched])
        assert payload["tier"] == "free"
        assert len(payload["filings"]) == 1


class TestTrialReminder:
    def test_none_without_expiry(self):
        assert trial_reminder(None) is None

    def test_never_negative(self):
        assert trial_reminder("2024-03-01T00:00:00+00:00", now=NOW)["days_left"] == 0


class TestRender:
    def test_subjects(self):
        filings = [{"docket_number": "23-108", "title": "Comments of AT&T"}]
        assert build_subject("immediate", filings, ["23-108"]).startswith("New filing in FCC docket 23-108")
        assert build_subject("daily", filings * 2, ["23-108"]) == "DocketCC Daily Digest: 2 new filings"
        assert build_subject("weekly", filings, ["23-108"]) == "DocketCC Weekly Digest: 1 new filing"
        assert "Welcome" in build_subject("seed_digest", filings, ["23-108"])

    def test_free_digest_shows_upgrade_not_summary(self, enriched):
        payload = build_queue_payload("free", [enriched], app_url="https://docketcc.test")
        email = render_digest("a@example.com", "daily", payload, app_url="https://docketcc.test")
        assert enriched.title in email.text
        assert enriched.summary not in email.html
        assert "https://docketcc.test/upgrade" in email.html

    def test_pro_digest_shows_summary(self, enriched):
        payload = build_queue_payload("pro", [enriched])
        email = render_digest("a@example.com", "immediate", payload)
        assert enriched.summary in email.text
        assert "Six month extension requested" in email.html

    def test_html_is_escaped(self, make_filing):
        payload = build_queue_payload("pro", [make_filing("A", title="<script>x</script>")])
        email = render_digest("a@example.com", "daily", payload)
        assert "<script>" not in email.html
