"""Tests for Config loading and input validation helpers."""

import pytest
from docketcc.config import Config, normalize_email, validate_docket_number, validate_email


class TestValidateDocketNumber:
    @pytest.mark.parametrize("docket", ["23-108", "11-42", " 17-108 "])
    def test_valid(self, docket):
        valid, msg = validate_docket_number(docket)
        assert valid is True
        assert msg == ""

    @pytest.mark.parametrize("docket", ["23108", "2023-108", "ab-cde", "23-1", "23-1088"])
    def test_invalid(self, docket):
        valid, msg = validate_docket_number(docket)
        assert valid is False
        assert "Expected format" in msg

    def test_empty_string(self):
        valid, msg = validate_docket_number("")
        assert valid is False
        assert "cannot be empty" in msg


class TestEmailHelpers:
    def test_normalize_lowercases_and_strips(self):
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"

    def test_validate_email(self):
        assert validate_email("alice@example.com") is True
        assert validate_email("not-an-email") is False
        assert validate_email("") is False


class TestGet:
    def test_dot_notation_nested_key(self, fresh_config):
        assert fresh_config.get("ecfs.default_limit") == 50

    def test_missing_key_returns_default(self, fresh_config):
        assert fresh_config.get("nonexistent.key", "fallback") == "fallback"

    def test_section_returns_dict(self, fresh_config):
        assert isinstance(fresh_config.get("tiers"), dict)


class TestPaths:
    def test_base_dir_from_env(self, fresh_config, tmp_path):
        assert fresh_config.base_dir == tmp_path
        assert fresh_config.database_path == tmp_path / "db" / "docketcc.db"
        assert fresh_config.logs_dir == tmp_path / "logs"


class TestConfigFile:
    def test_yaml_overrides_defaults(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text(
            "monitoring:\n  max_concurrent_dockets: 5\napp:\n  url: https://example.test\n"
        )
        Config._instance = None
        monkeypatch.setenv("DOCKETCC_BASE_DIR", str(tmp_path))
        try:
            cfg = Config()
            assert cfg.get("monitoring.max_concurrent_dockets") == 5
            # Sibling keys in a merged section survive
            assert cfg.get("monitoring.wave_delay_seconds") == 1.0
            assert cfg.app_url == "https://example.test"
        finally:
            Config._instance = None

    def test_merge_does_not_mutate_defaults(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text("tiers:\n  trial_days: 30\n")
        Config._instance = None
        monkeypatch.setenv("DOCKETCC_BASE_DIR", str(tmp_path))
        try:
            Config()
            assert Config.DEFAULTS["tiers"]["trial_days"] == 14
        finally:
            Config._instance = None


class TestSecrets:
    def test_reads_environment_snapshot(self, fresh_config):
        assert fresh_config.secret("admin_secret") == "test-admin-secret"
        assert fresh_config.secret("ecfs_api_key") is None

    def test_unknown_secret_raises(self, fresh_config):
        with pytest.raises(KeyError):
            fresh_config.secret("stripe_key")

    def test_reload_picks_up_new_values(self, fresh_config, monkeypatch):
        monkeypatch.setenv("ECFS_API_KEY", "new-key")
        assert fresh_config.secret("ecfs_api_key") is None
        fresh_config.reload()
        assert fresh_config.secret("ecfs_api_key") == "new-key"
