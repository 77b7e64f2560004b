"""
User accounts, tiers and per-filing notification records.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from .config import normalize_email, validate_email
from .database import USER_TIERS, Database, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 14


class UserStore:
    """CRUD over the users and user_notifications tables."""

    def __init__(self, db: Database, trial_days: int = DEFAULT_TRIAL_DAYS) -> None:
        self.db = db
        self.trial_days = trial_days

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
        return dict(row) if row else None

    def get_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def create_or_get(self, email: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Return the user for an email, creating a trial account if none exists.

        Args:
            email: Address in any case; stored lowercased.
            now: Creation time (defaults to now).

        Returns:
            The user row as a dict.
        """
        email = normalize_email(email)
        if not validate_email(email):
            raise ValueError(f"Invalid email address '{email}'")

        existing = self.get_by_email(email)
        if existing:
            return existing

        now = now or utc_now()
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO users (email, tier, trial_expires_at, created_at)
                VALUES (?, 'trial', ?, ?)
                """,
                (email, to_iso(now + timedelta(days=self.trial_days)), to_iso(now)),
            )
        logger.info("Created user %s on %d-day trial", email, self.trial_days)
        return self.get_by_email(email)

    def update_tier(self, user_id: int, tier: str, trial_expires_at: Optional[datetime] = None) -> bool:
        """
        Change a user's tier. Trial users get an expiry; other tiers clear it.
        """
        if tier not in USER_TIERS:
            raise ValueError(f"Invalid tier '{tier}'")
        if tier == "trial" and trial_expires_at is None:
            trial_expires_at = utc_now() + timedelta(days=self.trial_days)
        expires = to_iso(trial_expires_at) if tier == "trial" else None

        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE users SET tier = ?, trial_expires_at = ? WHERE id = ?",
                (tier, expires, user_id),
            )
            updated = cursor.rowcount > 0
        if updated:
            logger.info("User %d moved to %s tier", user_id, tier)
        return updated

    def handle_trial_expirations(self, now: Optional[datetime] = None) -> int:
        """
        Downgrade every trial whose expiry has passed to the free tier.

        Returns:
            Number of users downgraded.
        """
        now = now or utc_now()
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE users SET tier = 'free'
                WHERE tier = 'trial' AND trial_expires_at IS NOT NULL AND trial_expires_at <= ?
                """,
                (to_iso(now),),
            )
            count = cursor.rowcount
        if count:
            logger.info("Downgraded %d expired trials to free", count)
        return count

    def trial_days_left(self, user: Dict[str, Any], now: Optional[datetime] = None) -> Optional[int]:
        expires = parse_iso(user.get("trial_expires_at"))
        if user.get("tier") != "trial" or expires is None:
            return None
        remaining = expires - (now or utc_now())
        return max(remaining.days, 0)

    def has_been_notified(self, user_id: int, filing_id: str) -> bool:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM user_notifications WHERE user_id = ? AND filing_id = ?",
                (user_id, filing_id),
            ).fetchone()
        return row is not None

    def notified_filing_ids(self, user_id: int, filing_ids: Iterable[str]) -> set:
        """Subset of filing_ids the user has already been sent."""
        ids = list(filing_ids)
        if not ids:
            return set()
        placeholders = ",".join("?" * len(ids))
        with self.db.connection() as conn:
            rows = conn.execute(
                f"SELECT filing_id FROM user_notifications WHERE user_id = ? AND filing_id IN ({placeholders})",
                [user_id, *ids],
            ).fetchall()
        return {row["filing_id"] for row in rows}

    def mark_notified(self, user_id: int, filing_ids: Iterable[str], notification_type: str) -> int:
        """Record that the user was sent these filings. Already-recorded pairs are ignored."""
        now = to_iso()
        with self.db.connection() as conn:
            cursor = conn.executemany(
                """
                INSERT OR IGNORE INTO user_notifications (user_id, filing_id, notification_type, sent_at)
                VALUES (?, ?, ?, ?)
                """,
                [(user_id, filing_id, notification_type, now) for filing_id in filing_ids],
            )
            return cursor.rowcount

    def get_stats(self) -> Dict[str, Any]:
        with self.db.connection() as conn:
            by_tier = {
                row["tier"]: row["count"]
                for row in conn.execute("SELECT tier, COUNT(*) AS count FROM users GROUP BY tier")
            }
        return {"total": sum(by_tier.values()), "by_tier": by_tier}
