"""
Docket registry.

Tracks which dockets are actively monitored, how many subscribers each has,
and the outcome of the most recent poll. Subscriber counts are advisory and
only drive polling priority.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from .database import DOCKET_STATUSES, Database, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

HEALTH_ERROR_THRESHOLD = 3
HEALTH_STALE_HOURS = 4


def derive_health(
    error_count: int,
    last_checked: Union[str, datetime, None],
    now: Optional[datetime] = None,
    error_threshold: int = HEALTH_ERROR_THRESHOLD,
    stale_hours: float = HEALTH_STALE_HOURS,
) -> str:
    """
    Classify a docket as 'healthy', 'warning' or 'error'.

    Args:
        error_count: Consecutive failed polls.
        last_checked: Time of the last successful poll (ISO string or datetime).
        now: Reference time; defaults to the current UTC time.
        error_threshold: error_count at or above which the docket is in error.
        stale_hours: Age of last_checked beyond which the docket is a warning.

    Returns:
        Health label.
    """
    if (error_count or 0) >= error_threshold:
        return "error"

    now = now or utc_now()
    if isinstance(last_checked, str):
        last_checked = parse_iso(last_checked)
    elif isinstance(last_checked, datetime) and last_checked.tzinfo is None:
        last_checked = parse_iso(to_iso(last_checked))
    if now.tzinfo is None:
        now = parse_iso(to_iso(now))

    if last_checked is None or now - last_checked > timedelta(hours=stale_hours):
        return "warning"
    if error_count and error_count > 0:
        return "warning"
    return "healthy"


@dataclass
class PollResult:
    """Outcome of polling one docket."""

    checked_at: datetime
    new_filing_count: int
    succeeded: bool
    latest_filing_id: Optional[str] = None
    error: Optional[str] = None


class DocketRegistry:
    """Registry of monitored dockets in the active_dockets table."""

    def __init__(
        self,
        db: Database,
        health_error_threshold: int = HEALTH_ERROR_THRESHOLD,
        health_stale_hours: float = HEALTH_STALE_HOURS,
    ) -> None:
        self.db = db
        self.health_error_threshold = health_error_threshold
        self.health_stale_hours = health_stale_hours

    def register_or_touch(self, docket_number: str) -> bool:
        """
        Ensure a docket is registered.

        Returns:
            True if a new row was created, False if it already existed.
        """
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO active_dockets (docket_number, status, subscriber_count, created_at)
                VALUES (?, 'active', 0, ?)
                """,
                (docket_number, to_iso()),
            )
            created = cursor.rowcount > 0
        if created:
            logger.info("Registered docket %s", docket_number)
        return created

    def increment_subscribers(self, docket_number: str) -> None:
        self.register_or_touch(docket_number)
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE active_dockets SET subscriber_count = subscriber_count + 1 WHERE docket_number = ?",
                (docket_number,),
            )

    def decrement_subscribers(self, docket_number: str) -> None:
        with self.db.connection() as conn:
            conn.execute(
                """
                UPDATE active_dockets SET subscriber_count = MAX(subscriber_count - 1, 0)
                WHERE docket_number = ?
                """,
                (docket_number,),
            )

    def record_poll_result(self, docket_number: str, result: PollResult) -> None:
        """
        Update docket state after a poll.

        Success resets error_count and advances last_checked (and
        latest_filing_id when one is supplied). Failure increments
        error_count, keeps last_checked as it was, and records the error.
        """
        with self.db.connection() as conn:
            if result.succeeded:
                conn.execute(
                    """
                    UPDATE active_dockets
                    SET error_count = 0,
                        last_error = NULL,
                        last_checked = ?,
                        latest_filing_id = COALESCE(?, latest_filing_id)
                    WHERE docket_number = ?
                    """,
                    (to_iso(result.checked_at), result.latest_filing_id, docket_number),
                )
            else:
                conn.execute(
                    """
                    UPDATE active_dockets
                    SET error_count = error_count + 1, last_error = ?
                    WHERE docket_number = ?
                    """,
                    (result.error, docket_number),
                )

        if result.succeeded:
            logger.debug("Docket %s polled: %d new filings", docket_number, result.new_filing_count)
        else:
            logger.warning("Docket %s poll failed: %s", docket_number, result.error)

    def get(self, docket_number: str) -> Optional[Dict[str, Any]]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM active_dockets WHERE docket_number = ?", (docket_number,)
            ).fetchone()
        return dict(row) if row else None

    def list_active(self) -> List[Dict[str, Any]]:
        """
        Active dockets in polling priority order.

        Most subscribers first; ties broken by staleness, with dockets that
        have never been checked ahead of everything else.
        """
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM active_dockets
                WHERE status = 'active'
                ORDER BY subscriber_count DESC, last_checked IS NOT NULL, last_checked ASC
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def list_all(self) -> List[Dict[str, Any]]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM active_dockets ORDER BY subscriber_count DESC, docket_number"
            ).fetchall()
        return [dict(row) for row in rows]

    def list_with_health(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """All dockets with a derived 'health' field."""
        now = now or utc_now()
        dockets = self.list_all()
        for docket in dockets:
            docket["health"] = derive_health(
                docket["error_count"],
                docket["last_checked"],
                now,
                error_threshold=self.health_error_threshold,
                stale_hours=self.health_stale_hours,
            )
        return dockets

    def set_status(self, docket_number: str, status: str) -> bool:
        if status not in DOCKET_STATUSES:
            raise ValueError(f"Invalid docket status '{status}'")
        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE active_dockets SET status = ? WHERE docket_number = ?",
                (status, docket_number),
            )
            return cursor.rowcount > 0

    def set_mode(self, docket_number: str, mode: str) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE active_dockets SET mode = ? WHERE docket_number = ?",
                (mode, docket_number),
            )

    def initialize_from_subscriptions(self) -> int:
        """
        Register every subscribed docket and recompute subscriber counts.

        Returns:
            Number of dockets newly registered.
        """
        now = to_iso()
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO active_dockets (docket_number, status, subscriber_count, created_at)
                SELECT docket_number, 'active', 0, ? FROM subscriptions GROUP BY docket_number
                """,
                (now,),
            )
            created = cursor.rowcount
            conn.execute(
                """
                UPDATE active_dockets SET subscriber_count = (
                    SELECT COUNT(*) FROM subscriptions s
                    WHERE s.docket_number = active_dockets.docket_number
                )
                """
            )
        logger.info("Initialized registry from subscriptions: %d new dockets", created)
        return created

    def get_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts by status and by derived health."""
        dockets = self.list_with_health(now)
        by_status: Dict[str, int] = {}
        by_health = {"healthy": 0, "warning": 0, "error": 0}
        for docket in dockets:
            by_status[docket["status"]] = by_status.get(docket["status"], 0) + 1
            by_health[docket["health"]] += 1
        return {
            "total": len(dockets),
            "by_status": by_status,
            "by_health": by_health,
            "total_subscribers": sum(d["subscriber_count"] for d in dockets),
        }
