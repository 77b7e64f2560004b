"""
Docket subscriptions and tier limits.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import normalize_email, validate_docket_number
from .database import Database, to_iso
from .exceptions import InvalidDocketError, SubscriptionLimitError
from .registry import DocketRegistry
from .users import UserStore

logger = logging.getLogger(__name__)

FREQUENCIES = ("daily", "weekly", "immediate")


@dataclass
class SubscribeResult:
    """Outcome of a subscribe call."""

    subscription: Dict[str, Any]
    user: Dict[str, Any]
    created: bool
    replaced: List[str] = field(default_factory=list)


class SubscriptionManager:
    """Manages subscriptions and keeps registry subscriber counts in step."""

    def __init__(
        self,
        db: Database,
        users: UserStore,
        registry: DocketRegistry,
        max_subscriptions_free: int = 1,
        max_subscriptions_paid: int = 25,
    ) -> None:
        self.db = db
        self.users = users
        self.registry = registry
        self.max_subscriptions_free = max_subscriptions_free
        self.max_subscriptions_paid = max_subscriptions_paid

    def _rows_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY created_at, id", (user_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    def get(self, subscription_id: int) -> Optional[Dict[str, Any]]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)).fetchone()
        return dict(row) if row else None

    def subscribe(self, email: str, docket_number: str, frequency: str = "daily") -> SubscribeResult:
        """
        Subscribe a user to a docket.

        Free-tier users hold a single subscription: subscribing to another
        docket replaces whatever they had. Re-subscribing to a docket the
        user already follows only updates the frequency.

        Args:
            email: Subscriber email (created as a trial user if new).
            docket_number: Docket in NN-NNN format.
            frequency: daily, weekly or immediate.

        Returns:
            SubscribeResult with the subscription row and any replaced dockets.

        Raises:
            InvalidDocketError: Bad docket format.
            ValueError: Bad frequency or email.
            SubscriptionLimitError: Paid-tier subscription limit reached.
        """
        docket_number = (docket_number or "").strip()
        valid, error = validate_docket_number(docket_number)
        if not valid:
            raise InvalidDocketError(error)
        if frequency not in FREQUENCIES:
            raise ValueError(f"Invalid frequency '{frequency}'. Valid: {', '.join(FREQUENCIES)}")

        user = self.users.create_or_get(email)
        current = self._rows_for_user(user["id"])

        for row in current:
            if row["docket_number"] == docket_number:
                with self.db.connection() as conn:
                    conn.execute("UPDATE subscriptions SET frequency = ? WHERE id = ?", (frequency, row["id"]))
                row["frequency"] = frequency
                return SubscribeResult(subscription=row, user=user, created=False)

        replaced: List[str] = []
        if user["tier"] == "free":
            to_remove = current[: max(len(current) - self.max_subscriptions_free + 1, 0)]
            if to_remove:
                with self.db.connection() as conn:
                    conn.executemany("DELETE FROM subscriptions WHERE id = ?", [(r["id"],) for r in to_remove])
                for row in to_remove:
                    self.registry.decrement_subscribers(row["docket_number"])
                    replaced.append(row["docket_number"])
                logger.info("Free user %s: replaced %s with %s", user["email"], replaced, docket_number)
        elif len(current) >= self.max_subscriptions_paid:
            raise SubscriptionLimitError(
                f"{user['tier']} tier allows at most {self.max_subscriptions_paid} subscriptions"
            )

        self.registry.register_or_touch(docket_number)
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO subscriptions (user_id, docket_number, frequency, needs_seed, created_at)
                VALUES (?, ?, ?, 1, ?)
                """,
                (user["id"], docket_number, frequency, to_iso()),
            )
            subscription_id = cursor.lastrowid
        self.registry.increment_subscribers(docket_number)

        logger.info("Subscribed %s to %s (%s)", user["email"], docket_number, frequency)
        return SubscribeResult(subscription=self.get(subscription_id), user=user, created=True, replaced=replaced)

    def unsubscribe(self, email: str, docket_number: str) -> bool:
        user = self.users.get_by_email(email)
        if not user:
            return False
        with self.db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM subscriptions WHERE user_id = ? AND docket_number = ?",
                (user["id"], docket_number),
            )
            removed = cursor.rowcount
        for _ in range(removed):
            self.registry.decrement_subscribers(docket_number)
        if removed:
            logger.info("Unsubscribed %s from %s", user["email"], docket_number)
        return removed > 0

    def list_for_user(self, email: str) -> List[Dict[str, Any]]:
        user = self.users.get_by_email(normalize_email(email))
        if not user:
            return []
        return self._rows_for_user(user["id"])

    def get_subscribers(self, docket_number: str) -> List[Dict[str, Any]]:
        """Subscriptions for a docket joined with the owning user's email and tier."""
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT s.id AS subscription_id, s.user_id, s.docket_number, s.frequency,
                       s.last_notified, s.needs_seed, u.email, u.tier, u.trial_expires_at
                FROM subscriptions s
                JOIN users u ON u.id = s.user_id
                WHERE s.docket_number = ?
                ORDER BY s.id
                """,
                (docket_number,),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_needing_seed(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT s.id AS subscription_id, s.user_id, s.docket_number, s.frequency,
                       u.email, u.tier, u.trial_expires_at
                FROM subscriptions s
                JOIN users u ON u.id = s.user_id
                WHERE s.needs_seed = 1
                ORDER BY s.created_at LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]

    def mark_seeded(self, subscription_id: int) -> None:
        with self.db.connection() as conn:
            conn.execute("UPDATE subscriptions SET needs_seed = 0 WHERE id = ?", (subscription_id,))

    def touch_last_notified(self, user_id: int, docket_number: str, at: Optional[datetime] = None) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE subscriptions SET last_notified = ? WHERE user_id = ? AND docket_number = ?",
                (to_iso(at), user_id, docket_number),
            )

    def get_stats(self) -> Dict[str, Any]:
        with self.db.connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM subscriptions").fetchone()[0]
            by_frequency = {
                row["frequency"]: row["count"]
                for row in conn.execute(
                    "SELECT frequency, COUNT(*) AS count FROM subscriptions GROUP BY frequency"
                )
            }
            awaiting_seed = conn.execute("SELECT COUNT(*) FROM subscriptions WHERE needs_seed = 1").fetchone()[0]
        return {"total": total, "by_frequency": by_frequency, "awaiting_seed": awaiting_seed}
