"""
System health checks and aggregate statistics for the admin surface.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .database import Database, parse_iso, utc_now
from .filing_store import FilingStore
from .notifications.queue import NotificationQueue
from .registry import DocketRegistry
from .sources.ecfs import ECFSClient
from .subscriptions import SubscriptionManager
from .system_log import SystemLog
from .users import UserStore

logger = logging.getLogger(__name__)

SLOW_QUERY_MS = 5000
ACTIVITY_STALE_HOURS = 24

_SEVERITY = {"healthy": 0, "warning": 1, "slow": 1, "error": 2}


class SystemHealth:
    """Checks the database, the ECFS API and recent pipeline activity."""

    def __init__(
        self,
        db: Database,
        source: Optional[ECFSClient],
        filing_store: FilingStore,
        system_log: SystemLog,
    ) -> None:
        self.db = db
        self.source = source
        self.filing_store = filing_store
        self.system_log = system_log

    def check_database(self) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            with self.db.connection() as conn:
                conn.execute("SELECT COUNT(*) FROM active_dockets").fetchone()
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return {"status": "error", "message": str(e)}
        latency_ms = int((time.monotonic() - started) * 1000)
        status = "slow" if latency_ms > SLOW_QUERY_MS else "healthy"
        return {"status": status, "latency_ms": latency_ms}

    def check_source(self) -> Dict[str, Any]:
        if self.source is None:
            return {"status": "warning", "message": "filing source not configured"}
        return self.source.ping()

    def check_activity(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        latest_filing = self.filing_store.get_stats(now)["latest_stored_at"]
        latest_log = self.system_log.latest()
        latest_log_at = latest_log["created_at"] if latest_log else None

        stamps = [parse_iso(s) for s in (latest_filing, latest_log_at) if s]
        newest = max(stamps) if stamps else None
        stale = newest is None or now - newest > timedelta(hours=ACTIVITY_STALE_HOURS)
        return {
            "status": "warning" if stale else "healthy",
            "latest_filing_stored_at": latest_filing,
            "latest_log_at": latest_log_at,
        }

    def check(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run every check; overall status is the worst component status."""
        components = {
            "database": self.check_database(),
            "ecfs_api": self.check_source(),
            "activity": self.check_activity(now),
        }
        worst = max(components.values(), key=lambda c: _SEVERITY.get(c["status"], 2))["status"]
        overall = {"healthy": "healthy", "slow": "warning", "warning": "warning"}.get(worst, "error")
        return {"status": overall, "checked_at": (now or utc_now()).isoformat(), "components": components}


def collect_stats(
    registry: DocketRegistry,
    filing_store: FilingStore,
    queue: NotificationQueue,
    users: UserStore,
    subscriptions: SubscriptionManager,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Dashboard numbers across every table the pipeline owns."""
    return {
        "dockets": registry.get_stats(now),
        "filings": filing_store.get_stats(now),
        "queue": queue.get_stats(now),
        "users": users.get_stats(),
        "subscriptions": subscriptions.get_stats(),
    }
