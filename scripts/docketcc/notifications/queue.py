"""
Notification queue.

One row per (user, docket, digest) awaiting delivery. Rows move
pending -> sent or pending -> failed, and never leave those terminal states.
Redelivery of a failed row means enqueueing a new row.

Claiming stamps rows with a random token and a lease expiry. While the lease
is live no other worker can claim the row; if the worker dies, the row
becomes claimable again once the lease runs out.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..config import normalize_email
from ..database import DIGEST_TYPES, Database, to_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SECONDS = 300
DEFAULT_CLAIM_LIMIT = 100


def _decode(row: Any) -> Dict[str, Any]:
    item = dict(row)
    item["filing_ids"] = json.loads(item["filing_ids"]) if item.get("filing_ids") else []
    item["filing_data"] = json.loads(item["filing_data"]) if item.get("filing_data") else None
    return item


class NotificationQueue:
    """Persistent queue over the notification_queue table."""

    def __init__(self, db: Database, lease_seconds: int = DEFAULT_LEASE_SECONDS) -> None:
        self.db = db
        self.lease_seconds = lease_seconds

    def enqueue(
        self,
        user_email: str,
        docket_number: str,
        digest_type: str,
        filing_ids: List[str],
        filing_data: Optional[Dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> int:
        """
        Add a pending row. No deduplication happens here; callers check
        user_notifications before enqueueing.

        Returns:
            Id of the new row.
        """
        if digest_type not in DIGEST_TYPES:
            raise ValueError(f"Invalid digest type '{digest_type}'")

        now = to_iso()
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO notification_queue
                (user_email, docket_number, digest_type, filing_ids, filing_data,
                 status, scheduled_for, created_at)
                VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    normalize_email(user_email),
                    docket_number,
                    digest_type,
                    json.dumps(list(filing_ids)),
                    json.dumps(filing_data, default=str) if filing_data is not None else None,
                    to_iso(scheduled_for) if scheduled_for else now,
                    now,
                ),
            )
            queue_id = cursor.lastrowid

        logger.debug(
            "Queued %s notification %d for %s: %d filings", digest_type, queue_id, user_email, len(filing_ids)
        )
        return queue_id

    def claim_pending(
        self,
        limit: int = DEFAULT_CLAIM_LIMIT,
        now: Optional[datetime] = None,
        lease_seconds: Optional[int] = None,
        claim_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Claim due pending rows for delivery.

        Args:
            limit: Maximum rows to claim.
            now: Reference time for due-ness and lease expiry.
            lease_seconds: Lease length (defaults to the queue's setting).
            claim_token: Token to stamp; generated if omitted.

        Returns:
            Claimed rows ordered by scheduled_for, each carrying 'claim_token'.
        """
        now = now or utc_now()
        now_iso = to_iso(now)
        token = claim_token or uuid.uuid4().hex
        expires = to_iso(now + timedelta(seconds=lease_seconds or self.lease_seconds))

        with self.db.connection() as conn:
            conn.execute(
                """
                UPDATE notification_queue
                SET claim_token = ?, claim_expires_at = ?
                WHERE id IN (
                    SELECT id FROM notification_queue
                    WHERE status = 'pending'
                      AND scheduled_for <= ?
                      AND (claim_expires_at IS NULL OR claim_expires_at <= ?)
                    ORDER BY scheduled_for ASC, created_at ASC, id ASC
                    LIMIT ?
                )
                AND status = 'pending'
                AND (claim_expires_at IS NULL OR claim_expires_at <= ?)
                """,
                (token, expires, now_iso, now_iso, limit, now_iso),
            )

        # Re-read by token: only rows this call actually stamped come back
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notification_queue
                WHERE claim_token = ? AND status = 'pending'
                ORDER BY scheduled_for ASC, created_at ASC, id ASC
                """,
                (token,),
            ).fetchall()

        if rows:
            logger.info("Claimed %d queue rows (token %s)", len(rows), token[:8])
        return [_decode(row) for row in rows]

    def _finish(self, queue_id: int, status: str, claim_token: Optional[str], **fields: Any) -> bool:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        query = f"""
            UPDATE notification_queue
            SET status = ?, {assignments}, claim_expires_at = NULL
            WHERE id = ? AND status = 'pending'
        """
        params: list = [status, *fields.values(), queue_id]
        if claim_token is not None:
            query += " AND claim_token = ?"
            params.append(claim_token)
        with self.db.connection() as conn:
            return conn.execute(query, params).rowcount > 0

    def mark_sent(self, queue_id: int, sent_at: Optional[datetime] = None, claim_token: Optional[str] = None) -> bool:
        """Terminal transition to sent. Returns False if the row was not pending (or not ours)."""
        return self._finish(queue_id, "sent", claim_token, sent_at=to_iso(sent_at))

    def mark_failed(self, queue_id: int, error_message: str, claim_token: Optional[str] = None) -> bool:
        """Terminal transition to failed. Returns False if the row was not pending (or not ours)."""
        return self._finish(queue_id, "failed", claim_token, error_message=(error_message or "")[:1000])

    def get(self, queue_id: int) -> Optional[Dict[str, Any]]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM notification_queue WHERE id = ?", (queue_id,)).fetchone()
        return _decode(row) if row else None

    def requeue_failed(self, queue_id: int) -> int:
        """
        Operator retry: copy a failed row into a new pending row.

        Returns:
            Id of the new row.

        Raises:
            LookupError: Row missing.
            ValueError: Row is not failed.
        """
        row = self.get(queue_id)
        if row is None:
            raise LookupError(f"Queue row {queue_id} not found")
        if row["status"] != "failed":
            raise ValueError(f"Queue row {queue_id} is {row['status']}, only failed rows can be requeued")
        new_id = self.enqueue(
            row["user_email"], row["docket_number"], row["digest_type"], row["filing_ids"], row["filing_data"]
        )
        logger.info("Requeued failed notification %d as %d", queue_id, new_id)
        return new_id

    def queued_filing_ids(self, user_email: str, docket_number: str) -> set:
        """
        Filing ids in any row for this user and docket, whatever its status.

        Failed rows count too: redelivery goes through requeue_failed.
        """
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT filing_ids FROM notification_queue
                WHERE user_email = ? AND docket_number = ?
                """,
                (normalize_email(user_email), docket_number),
            ).fetchall()
        ids: set = set()
        for row in rows:
            ids.update(json.loads(row["filing_ids"] or "[]"))
        return ids

    def rows_referencing(self, filing_id: str) -> List[Dict[str, Any]]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT nq.* FROM notification_queue nq, json_each(nq.filing_ids) j
                WHERE j.value = ? ORDER BY nq.id
                """,
                (filing_id,),
            ).fetchall()
        return [_decode(row) for row in rows]

    def list_recent(self, limit: int = 50, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM notification_queue"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self.db.connection() as conn:
            return [_decode(row) for row in conn.execute(query, params).fetchall()]

    def get_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Pending total plus a 24h breakdown by status and digest type."""
        since = to_iso((now or utc_now()) - timedelta(hours=24))
        with self.db.connection() as conn:
            breakdown = [
                dict(row)
                for row in conn.execute(
                    """
                    SELECT status, digest_type, COUNT(*) AS count
                    FROM notification_queue WHERE created_at > ?
                    GROUP BY status, digest_type ORDER BY status, digest_type
                    """,
                    (since,),
                )
            ]
            pending_total = conn.execute(
                "SELECT COUNT(*) FROM notification_queue WHERE status = 'pending'"
            ).fetchone()[0]
        return {"breakdown": breakdown, "pending_total": pending_total}
