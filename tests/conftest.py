"""Shared test fixtures for the DocketCC test suite."""

from datetime import datetime, timezone

import pytest
from docketcc.config import Config
from docketcc.database import Database
from docketcc.filing_store import FilingStore
from docketcc.models import Filing, FilingDocument
from docketcc.notifications.queue import NotificationQueue
from docketcc.registry import DocketRegistry
from docketcc.subscriptions import SubscriptionManager
from docketcc.system_log import SystemLog
from docketcc.users import UserStore

# Wednesday 2024-03-13, 14:00 EDT
BUSINESS_HOURS_UTC = datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc)
# Thursday 2024-03-14, 02:00 EDT
QUIET_HOURS_UTC = datetime(2024, 3, 14, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def fresh_config(tmp_path, monkeypatch):
    """Create a Config instance with reset singleton state pointed at a temp directory."""
    Config._instance = None
    monkeypatch.setenv("DOCKETCC_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("DOCKETCC_ADMIN_SECRET", "test-admin-secret")
    for var in ("ECFS_API_KEY", "ANTHROPIC_API_KEY", "JINA_API_KEY", "RESEND_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    cfg = Config()
    yield cfg
    Config._instance = None


@pytest.fixture
def tmp_db(tmp_path):
    """Create a Database instance using a temp-dir SQLite file."""
    db_path = tmp_path / "test.db"
    return Database(db_path=db_path)


@pytest.fixture
def system_log(tmp_db):
    return SystemLog(tmp_db)


@pytest.fixture
def registry(tmp_db):
    return DocketRegistry(tmp_db)


@pytest.fixture
def filing_store(tmp_db, system_log):
    return FilingStore(tmp_db, system_log)


@pytest.fixture
def users(tmp_db):
    return UserStore(tmp_db)


@pytest.fixture
def subscriptions(tmp_db, users, registry):
    return SubscriptionManager(tmp_db, users, registry)


@pytest.fixture
def queue(tmp_db):
    return NotificationQueue(tmp_db)


@pytest.fixture
def make_filing():
    """Factory for Filing objects with sensible defaults."""

    def _make(filing_id="1001", docket_number="23-108", with_pdf=False, **kwargs):
        documents = []
        if with_pdf:
            documents.append(
                FilingDocument(
                    filename="comments.pdf",
                    src=f"https://www.fcc.gov/ecfs/document/{filing_id}/1.pdf",
                    file_type="pdf",
                    downloadable=True,
                )
            )
        defaults = {
            "title": f"Comments of Example Corp ({filing_id})",
            "author": "Example Corp",
            "filing_type": "COMMENT",
            "date_received": "2024-03-13T00:00:00+00:00",
            "filing_url": f"https://www.fcc.gov/ecfs/filing/{filing_id}",
            "documents": documents,
        }
        defaults.update(kwargs)
        return Filing(id=filing_id, docket_number=docket_number, **defaults)

    return _make


@pytest.fixture
def free_user(users):
    """A user already downgraded to the free tier."""
    user = users.create_or_get("free@example.com")
    users.update_tier(user["id"], "free")
    return users.get_by_id(user["id"])


@pytest.fixture
def pro_user(users):
    user = users.create_or_get("pro@example.com")
    users.update_tier(user["id"], "pro")
    return users.get_by_id(user["id"])
