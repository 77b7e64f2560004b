"""
Database management for DocketCC.

Handles SQLite schema creation and connection handling. Each operation opens
its own short-lived connection, so worker threads never share one.
"""

import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

FILING_STATUSES = ("pending", "processing", "completed", "failed")
QUEUE_STATUSES = ("pending", "sent", "failed")
DIGEST_TYPES = ("daily", "weekly", "immediate", "seed_digest")
USER_TIERS = ("free", "trial", "pro")
DOCKET_STATUSES = ("active", "paused", "error")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime truncated to seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_iso(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime the way every timestamp column stores it.

    Naive datetimes are assumed to be UTC. All stored values share one
    format, so string comparison in SQL is chronological.
    """
    if dt is None:
        dt = utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Database:
    """Database manager for DocketCC."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._ensure_directory()
        self._init_schema()

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            SQLite connection with row factory set to sqlite3.Row.
        """
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize the database schema."""
        with self.connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT UNIQUE NOT NULL COLLATE NOCASE,
                    tier TEXT NOT NULL DEFAULT 'free'
                        CHECK (tier IN ('free', 'trial', 'pro')),
                    trial_expires_at TEXT,
                    stripe_customer_id TEXT,
                    session_token TEXT,
                    session_expires_at TEXT,
                    magic_token TEXT,
                    magic_expires_at TEXT,
                    magic_requests INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    docket_number TEXT NOT NULL,
                    frequency TEXT NOT NULL DEFAULT 'daily'
                        CHECK (frequency IN ('daily', 'weekly', 'immediate')),
                    last_notified TEXT,
                    needs_seed INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS active_dockets (
                    docket_number TEXT PRIMARY KEY,
                    subscriber_count INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'paused', 'error')),
                    error_count INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    last_checked TEXT,
                    latest_filing_id TEXT,
                    mode TEXT NOT NULL DEFAULT 'normal',
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS filings (
                    id TEXT PRIMARY KEY,
                    docket_number TEXT NOT NULL,
                    title TEXT NOT NULL,
                    author TEXT,
                    filing_type TEXT,
                    date_received TEXT,
                    filing_url TEXT,
                    documents TEXT NOT NULL DEFAULT '[]',
                    raw_data TEXT,
                    summary TEXT,
                    key_points TEXT,
                    stakeholders TEXT,
                    regulatory_impact TEXT,
                    document_analysis TEXT,
                    confidence TEXT,
                    documents_processed INTEGER NOT NULL DEFAULT 0,
                    ai_enhanced INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
                    created_at TEXT NOT NULL,
                    processed_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS notification_queue (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT NOT NULL,
                    docket_number TEXT NOT NULL,
                    digest_type TEXT NOT NULL
                        CHECK (digest_type IN ('daily', 'weekly', 'immediate', 'seed_digest')),
                    filing_ids TEXT NOT NULL DEFAULT '[]',
                    filing_data TEXT,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'sent', 'failed')),
                    scheduled_for TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    sent_at TEXT,
                    error_message TEXT,
                    claim_token TEXT,
                    claim_expires_at TEXT
                )
            """)

            # Per-user, per-filing delivery record
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    filing_id TEXT NOT NULL,
                    notification_type TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    UNIQUE (user_id, filing_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS system_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    level TEXT NOT NULL,
                    message TEXT NOT NULL,
                    component TEXT,
                    docket_number TEXT,
                    filing_id TEXT,
                    details TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            # Indexes for common queries
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_subscriptions_docket ON subscriptions(docket_number)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_filings_docket ON filings(docket_number, date_received)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_filings_status ON filings(status)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_filings_created ON filings(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_queue_pending ON notification_queue(status, scheduled_for)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_queue_email ON notification_queue(user_email)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_logs_created ON system_logs(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_logs_level ON system_logs(level)")

    def table_counts(self) -> dict[str, int]:
        """Row counts for every pipeline table."""
        tables = (
            "users",
            "subscriptions",
            "active_dockets",
            "filings",
            "notification_queue",
            "user_notifications",
            "system_logs",
        )
        with self.connection() as conn:
            return {t: conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in tables}

    def backup(self, backup_dir: Path) -> Path:
        """
        Create a timestamped copy of the database file.

        Args:
            backup_dir: Directory that receives the copy.

        Returns:
            Path to the backup file.
        """
        backup_dir = Path(backup_dir)
        backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = backup_dir / f"docketcc_{timestamp}.db"
        shutil.copy2(self.db_path, backup_path)
        return backup_path
