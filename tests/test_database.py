"""Integration tests with temp SQLite database."""

from datetime import datetime, timezone

from docketcc.database import parse_iso, to_iso


class TestTimestamps:
    def test_naive_treated_as_utc(self):
        assert to_iso(datetime(2024, 3, 13, 12, 0)) == "2024-03-13T12:00:00+00:00"

    def test_converts_to_utc(self):
        from zoneinfo import ZoneInfo

        local = datetime(2024, 3, 13, 8, 0, tzinfo=ZoneInfo("America/New_York"))
        assert to_iso(local) == "2024-03-13T12:00:00+00:00"

    def test_parse_round_trip_and_z_suffix(self):
        parsed = parse_iso("2024-03-13T12:00:00Z")
        assert parsed == datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)
        assert parse_iso(None) is None


class TestSchema:
    def test_all_tables_created(self, tmp_db):
        counts = tmp_db.table_counts()
        assert set(counts) == {
            "users",
            "subscriptions",
            "active_dockets",
            "filings",
            "notification_queue",
            "user_notifications",
            "system_logs",
        }
        assert all(count == 0 for count in counts.values())

    def test_init_is_idempotent(self, tmp_db):
        from docketcc.database import Database

        Database(tmp_db.db_path)
        assert tmp_db.table_counts()["filings"] == 0


class TestBackup:
    def test_backup_creates_copy(self, tmp_db, tmp_path):
        backup_path = tmp_db.backup(tmp_path / "backups")
        assert backup_path.exists()
        assert backup_path.name.startswith("docketcc_")
