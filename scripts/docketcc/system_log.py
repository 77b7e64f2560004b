"""
Persistent audit trail in the system_logs table.

Writes never raise: a failure to record an event is reported through the
standard logger and the caller carries on.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .database import Database, to_iso, utc_now

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error")


class SystemLog:
    """Append-only diagnostic records for the pipeline."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def log_event(
        self,
        level: str,
        message: str,
        component: str,
        details: Optional[Dict[str, Any]] = None,
        docket_number: Optional[str] = None,
        filing_id: Optional[str] = None,
    ) -> None:
        """
        Record a pipeline event.

        Args:
            level: One of debug, info, warning, error.
            message: Short human-readable description.
            component: Subsystem that produced the event (e.g. 'filing_store').
            details: Optional JSON-serializable context.
            docket_number: Optional docket the event concerns.
            filing_id: Optional filing the event concerns.
        """
        level = level.lower()
        if level not in LOG_LEVELS:
            level = "info"
        try:
            payload = json.dumps(details, default=str) if details else None
            with self.db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO system_logs
                    (level, message, component, docket_number, filing_id, details, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (level, message, component, docket_number, filing_id, payload, to_iso()),
                )
        except Exception:
            logger.exception("Failed to write system log entry: %s", message)

    def info(self, message: str, component: str, **kwargs: Any) -> None:
        self.log_event("info", message, component, **kwargs)

    def warning(self, message: str, component: str, **kwargs: Any) -> None:
        self.log_event("warning", message, component, **kwargs)

    def error(self, message: str, component: str, **kwargs: Any) -> None:
        self.log_event("error", message, component, **kwargs)

    def get_logs(
        self,
        level: Optional[str] = None,
        component: Optional[str] = None,
        docket_number: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Most recent log entries, newest first, with details decoded.
        """
        query = "SELECT * FROM system_logs WHERE 1=1"
        params: list = []
        if level:
            query += " AND level = ?"
            params.append(level.lower())
        if component:
            query += " AND component = ?"
            params.append(component)
        if docket_number:
            query += " AND docket_number = ?"
            params.append(docket_number)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()

        entries = []
        for row in rows:
            entry = dict(row)
            entry["details"] = json.loads(entry["details"]) if entry["details"] else None
            entries.append(entry)
        return entries

    def latest(self) -> Optional[Dict[str, Any]]:
        entries = self.get_logs(limit=1)
        return entries[0] if entries else None

    def cleanup_old_logs(self, retention_days: int = 30) -> int:
        """Delete entries older than the retention window. Returns rows removed."""
        cutoff = to_iso(utc_now() - timedelta(days=retention_days))
        with self.db.connection() as conn:
            cursor = conn.execute("DELETE FROM system_logs WHERE created_at < ?", (cutoff,))
            deleted = cursor.rowcount
        logger.info("Removed %d system log entries older than %d days", deleted, retention_days)
        return deleted
