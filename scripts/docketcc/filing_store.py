"""
Filing storage with id-based deduplication.

The source-assigned submission id is the only identity: a filing whose id is
already stored is a duplicate, whatever its content. If the upstream API ever
reused or dropped ids, filings would be silently lost or doubled; content
hashing is deliberately not used to paper over that.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from .database import FILING_STATUSES, Database, to_iso, utc_now
from .exceptions import FilingNotFoundError
from .models import Enrichment, Filing
from .system_log import SystemLog

logger = logging.getLogger(__name__)

EXISTING_ID_CHUNK = 100


@dataclass
class StoreResult:
    """Outcome of a store_new call."""

    stored_count: int = 0
    duplicate_count: int = 0
    error_count: int = 0
    stored_ids: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Stored {self.stored_count} filings, {self.duplicate_count} duplicates"
            f"{f', {self.error_count} errors' if self.error_count else ''}"
        )


class FilingStore:
    """Persists normalized filings in the filings table."""

    def __init__(self, db: Database, system_log: Optional[SystemLog] = None) -> None:
        self.db = db
        self.system_log = system_log or SystemLog(db)

    def existing_ids(self, ids: Iterable[str]) -> Set[str]:
        """Return the subset of ids already stored, querying in chunks."""
        ids = list(dict.fromkeys(ids))
        found: Set[str] = set()
        with self.db.connection() as conn:
            for start in range(0, len(ids), EXISTING_ID_CHUNK):
                chunk = ids[start : start + EXISTING_ID_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(f"SELECT id FROM filings WHERE id IN ({placeholders})", chunk).fetchall()
                found.update(row["id"] for row in rows)
        return found

    def _insert(self, filing: Filing) -> None:
        row = filing.to_row()
        row["created_at"] = to_iso()
        columns = ", ".join(row)
        placeholders = ", ".join("?" * len(row))
        with self.db.connection() as conn:
            conn.execute(f"INSERT INTO filings ({columns}) VALUES ({placeholders})", tuple(row.values()))

    def store_new(self, filings: List[Filing]) -> StoreResult:
        """
        Insert the filings that are not already stored.

        Each insert is independent: a failure on one filing is logged with its
        id and the rest of the batch continues. A uniqueness conflict at
        insert time (a concurrent run stored it first) counts as a duplicate.

        Args:
            filings: Candidate filings, possibly overlapping the store.

        Returns:
            StoreResult where stored + duplicates + errors == len(filings).
        """
        result = StoreResult()
        if not filings:
            return result

        existing = self.existing_ids(f.id for f in filings)
        seen: Set[str] = set()

        for filing in filings:
            if filing.id in existing or filing.id in seen:
                result.duplicate_count += 1
                continue
            seen.add(filing.id)
            try:
                self._insert(filing)
            except sqlite3.IntegrityError:
                logger.debug("Filing %s already stored (insert conflict)", filing.id)
                result.duplicate_count += 1
                continue
            except Exception as e:
                logger.warning("Failed to store filing %s: %s", filing.id, e)
                result.error_count += 1
                self.system_log.warning(
                    f"Failed to store filing {filing.id}",
                    "filing_store",
                    details={"error": str(e)},
                    docket_number=filing.docket_number,
                    filing_id=filing.id,
                )
                continue
            result.stored_count += 1
            result.stored_ids.append(filing.id)

        logger.info("%s", result)
        self.system_log.info(
            "Filing storage completed",
            "filing_store",
            details={
                "input": len(filings),
                "stored": result.stored_count,
                "duplicates": result.duplicate_count,
                "errors": result.error_count,
            },
        )
        return result

    def get(self, filing_id: str) -> Optional[Filing]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM filings WHERE id = ?", (filing_id,)).fetchone()
        return Filing.from_row(row) if row else None

    def get_by_ids(self, ids: List[str]) -> List[Filing]:
        """Fetch filings by id, preserving the order of `ids` and skipping unknown ones."""
        if not ids:
            return []
        by_id: Dict[str, Filing] = {}
        with self.db.connection() as conn:
            for start in range(0, len(ids), EXISTING_ID_CHUNK):
                chunk = ids[start : start + EXISTING_ID_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                for row in conn.execute(f"SELECT * FROM filings WHERE id IN ({placeholders})", chunk):
                    by_id[row["id"]] = Filing.from_row(row)
        return [by_id[i] for i in ids if i in by_id]

    def get_recent(self, docket_number: str, limit: int = 20) -> List[Filing]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM filings WHERE docket_number = ?
                ORDER BY date_received DESC, created_at DESC LIMIT ?
                """,
                (docket_number, limit),
            ).fetchall()
        return [Filing.from_row(row) for row in rows]

    def count_for_docket(self, docket_number: str) -> int:
        with self.db.connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM filings WHERE docket_number = ?", (docket_number,)
            ).fetchone()[0]

    def update_status(self, filing_id: str, status: str, enrichment: Optional[Enrichment] = None) -> None:
        """
        Transition a filing's processing status, optionally attaching AI fields.

        Raises:
            ValueError: Unknown status.
            FilingNotFoundError: No filing with that id.
        """
        if status not in FILING_STATUSES:
            raise ValueError(f"Invalid filing status '{status}'")

        with self.db.connection() as conn:
            if enrichment is None:
                cursor = conn.execute(
                    "UPDATE filings SET status = ?, processed_at = ? WHERE id = ?",
                    (status, to_iso() if status in ("completed", "failed") else None, filing_id),
                )
            else:
                cursor = conn.execute(
                    """
                    UPDATE filings SET
                        status = ?,
                        summary = ?,
                        key_points = ?,
                        stakeholders = ?,
                        regulatory_impact = ?,
                        document_analysis = ?,
                        confidence = ?,
                        documents_processed = ?,
                        ai_enhanced = 1,
                        processed_at = ?
                    WHERE id = ?
                    """,
                    (
                        status,
                        enrichment.summary,
                        json.dumps(enrichment.key_points),
                        json.dumps(enrichment.stakeholders),
                        enrichment.regulatory_impact,
                        enrichment.document_analysis,
                        enrichment.confidence,
                        enrichment.documents_processed,
                        to_iso(),
                        filing_id,
                    ),
                )
            if cursor.rowcount == 0:
                raise FilingNotFoundError(f"Filing {filing_id} not found")

    def get_pending_for_processing(self, limit: int = 10) -> List[Filing]:
        """Filings awaiting (or needing another) enrichment attempt, oldest first."""
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM filings WHERE status IN ('pending', 'failed')
                ORDER BY created_at ASC LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [Filing.from_row(row) for row in rows]

    def find_unqueued(self, since: datetime, limit: int = 200) -> List[Filing]:
        """
        Processed filings created since `since` that some subscriber has not
        been served.

        A (subscriber, filing) pair is unserved when no queue row for that
        subscriber references the filing and no delivery record exists.
        Subscribers who joined after the filing was stored are left to the
        seed digest. This catches both a run that stopped between storing
        and enqueueing and subscribers deferred by the per-run row limit.
        """
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT f.* FROM filings f
                WHERE f.status IN ('completed', 'failed')
                  AND f.created_at >= ?
                  AND EXISTS (
                      SELECT 1 FROM subscriptions s JOIN users u ON u.id = s.user_id
                      WHERE s.docket_number = f.docket_number
                        AND s.created_at <= f.created_at
                        AND NOT EXISTS (
                            SELECT 1 FROM user_notifications un
                            WHERE un.user_id = u.id AND un.filing_id = f.id
                        )
                        AND NOT EXISTS (
                            SELECT 1 FROM notification_queue nq, json_each(nq.filing_ids) j
                            WHERE nq.user_email = u.email
                              AND nq.docket_number = f.docket_number
                              AND j.value = f.id
                        )
                  )
                ORDER BY f.created_at ASC LIMIT ?
                """,
                (to_iso(since), limit),
            ).fetchall()
        return [Filing.from_row(row) for row in rows]

    def get_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals, recent counts, and breakdowns by status and docket."""
        now = now or utc_now()
        day_ago = to_iso(now - timedelta(hours=24))
        week_ago = to_iso(now - timedelta(days=7))

        with self.db.connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM filings").fetchone()[0]
            recent_24h = conn.execute("SELECT COUNT(*) FROM filings WHERE created_at >= ?", (day_ago,)).fetchone()[0]
            recent_7d = conn.execute("SELECT COUNT(*) FROM filings WHERE created_at >= ?", (week_ago,)).fetchone()[0]
            by_status = {
                row["status"]: row["count"]
                for row in conn.execute("SELECT status, COUNT(*) AS count FROM filings GROUP BY status")
            }
            by_docket = {
                row["docket_number"]: row["count"]
                for row in conn.execute(
                    """
                    SELECT docket_number, COUNT(*) AS count FROM filings
                    GROUP BY docket_number ORDER BY count DESC LIMIT 10
                    """
                )
            }
            latest = conn.execute("SELECT MAX(created_at) FROM filings").fetchone()[0]

        return {
            "total": total,
            "recent_24h": recent_24h,
            "recent_7d": recent_7d,
            "by_status": by_status,
            "by_docket": by_docket,
            "latest_stored_at": latest,
        }

    def cleanup_old(self, retention_days: int = 365) -> int:
        """Delete filings stored before the retention window. Returns rows removed."""
        cutoff = to_iso(utc_now() - timedelta(days=retention_days))
        with self.db.connection() as conn:
            deleted = conn.execute("DELETE FROM filings WHERE created_at < ?", (cutoff,)).rowcount
        logger.info("Removed %d filings older than %d days", deleted, retention_days)
        return deleted
