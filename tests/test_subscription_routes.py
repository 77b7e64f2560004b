"""Tests for the public subscription API."""

from unittest.mock import MagicMock, patch

import pytest

try:
    from fastapi.testclient import TestClient
except ModuleNotFoundError:
    pytest.skip("fastapi is not installed", allow_module_level=True)

from docketcc.exceptions import ECFSError
from docketcc.services import build_services


@pytest.fixture
def services(fresh_config, tmp_db):
    services = build_services(fresh_config, db=tmp_db)
    services.seeds.source = MagicMock()
    services.seeds.source.fetch_latest.return_value = []
    return services


@pytest.fixture
def client(services):
    from docketcc.web import dependencies
    from docketcc.web.main import app

    app.dependency_overrides[dependencies.get_services] = lambda: services
    with patch("docketcc.web.lifespan._start_scheduler", return_value=None):
        with TestClient(app) as c:
            yield c
    app.dependency_overrides.clear()


class TestSubscribe:
    def test_creates_subscription(self, client, services):
        response = client.post(
            "/api/subscriptions", json={"email": "A@Example.com", "docket_number": "23-108"}
        )
        assert response.status_code == 201
        data = response.json()
        assert data["created"] is True
        assert data["tier"] == "trial"
        assert data["subscription"]["frequency"] == "daily"
        assert data["seed_queued"] is False
        assert services.registry.get("23-108")["subscriber_count"] == 1

    def test_seed_queued_when_filings_exist(self, client, services, make_filing):
        services.filing_store.store_new([make_filing("A")])
        response = client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        assert response.json()["seed_queued"] is True
        (row,) = services.queue.list_recent()
        assert row["digest_type"] == "seed_digest"

    def test_seed_failure_does_not_fail_request(self, client, services):
        services.seeds.source.fetch_latest.side_effect = RuntimeError("connection reset")
        response = client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        assert response.status_code == 201
        assert response.json()["seed_queued"] is False
        assert len(services.subscriptions.get_needing_seed()) == 1

    def test_seed_fetch_error_deferred(self, client, services):
        services.seeds.source.fetch_latest.side_effect = ECFSError("HTTP error 503")
        response = client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        assert response.status_code == 201
        assert response.json()["seed_queued"] is False

    def test_invalid_docket(self, client):
        response = client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23108"})
        assert response.status_code == 400

    def test_invalid_frequency(self, client):
        response = client.post(
            "/api/subscriptions",
            json={"email": "a@example.com", "docket_number": "23-108", "frequency": "hourly"},
        )
        assert response.status_code == 400

    def test_free_tier_replaces_subscription(self, client, services):
        client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        user = services.users.get_by_email("a@example.com")
        services.users.update_tier(user["id"], "free")

        response = client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "11-42"})
        assert response.json()["replaced"] == ["23-108"]
        listed = client.get("/api/subscriptions", params={"email": "a@example.com"}).json()
        assert [s["docket_number"] for s in listed["subscriptions"]] == ["11-42"]


class TestUnsubscribe:
    def test_removes_subscription(self, client, services):
        client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        response = client.request(
            "DELETE", "/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"}
        )
        assert response.status_code == 200
        assert services.subscriptions.list_for_user("a@example.com") == []

    def test_unknown_subscription(self, client):
        response = client.request(
            "DELETE", "/api/subscriptions", json={"email": "nobody@example.com", "docket_number": "23-108"}
        )
        assert response.status_code == 404


class TestListSubscriptions:
    def test_normalizes_email(self, client):
        client.post("/api/subscriptions", json={"email": "a@example.com", "docket_number": "23-108"})
        data = client.get("/api/subscriptions", params={"email": " A@Example.com "}).json()
        assert data["email"] == "a@example.com"
        assert len(data["subscriptions"]) == 1
