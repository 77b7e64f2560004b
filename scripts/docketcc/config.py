"""
Configuration management for DocketCC.

Handles loading and accessing configuration from YAML files and environment
variables. Components receive the values they need at construction time;
nothing below the entrypoints reads the environment directly.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DOCKET_PATTERN = re.compile(r"^\d{2}-\d{2,3}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Environment variables holding credentials, keyed by the name used in code
SECRET_ENV_VARS = {
    "ecfs_api_key": "ECFS_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "jina_api_key": "JINA_API_KEY",
    "resend_api_key": "RESEND_API_KEY",
    "admin_secret": "DOCKETCC_ADMIN_SECRET",
}


class Config:
    """Configuration manager for DocketCC."""

    # Default configuration values
    DEFAULTS: Dict[str, Any] = {
        "paths": {
            "base_dir": None,  # Set dynamically
            "database": "db/docketcc.db",
            "backups": "db/backups",
            "logs": "logs",
        },
        "app": {
            "url": "https://docketcc.com",
            "timezone": "America/New_York",
        },
        "tiers": {
            "trial_days": 14,
            "max_subscriptions_free": 1,
            "max_subscriptions_paid": 25,
        },
        "ecfs": {
            "base_url": "https://publicapi.fcc.gov/ecfs/filings",
            "default_limit": 50,
            "timeout": 30,
            "user_agent": "DocketCC/2.0 (FCC docket monitoring; +https://docketcc.com)",
            "deluge_window": 7,
        },
        "monitoring": {
            "poll_interval_minutes": 120,
            "max_concurrent_dockets": 3,
            "wave_delay_seconds": 1.0,
            "health_stale_hours": 4,
            "health_error_threshold": 3,
        },
        "enrichment": {
            "enabled": True,
            "model": "claude-3-5-haiku-latest",
            "max_tokens": 1024,
            "max_document_chars": 8000,
            "max_documents": 3,
            "max_concurrent": 2,
            "batch_delay_seconds": 1.0,
            "circuit_threshold": 3,
            "circuit_reset_seconds": 300,
        },
        "documents": {
            "reader_url": "https://r.jina.ai/",
            "timeout": 60,
            "min_text_length": 100,
        },
        "notifications": {
            "max_notifications_per_run": 100,
            "max_filings_per_notification": 25,
            "reconcile_hours": 24,
        },
        "delivery": {
            "interval_minutes": 5,
            "batch_limit": 100,
            "lease_seconds": 300,
            "api_url": "https://api.resend.com/emails",
            "from_address": "DocketCC <notifications@docketcc.com>",
            "timeout": 30,
        },
        "scheduler": {
            "enabled": False,
            "maintenance_time": "03:00",
        },
        "retention": {
            "logs_days": 30,
            "filings_days": 365,
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file_enabled": True,
        },
    }

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}
    _base_dir: Optional[Path] = None

    def __new__(cls) -> "Config":
        """Singleton pattern to ensure single configuration instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize configuration if not already done."""
        if self._initialized:
            return
        self._initialized = True
        self._config = copy.deepcopy(self.DEFAULTS)
        self._base_dir = self._find_base_dir()
        self._load_config_file()
        self._secrets = self._load_secrets()

    def _find_base_dir(self) -> Path:
        """Find the base directory of the DocketCC installation."""
        env_base = os.environ.get("DOCKETCC_BASE_DIR")
        if env_base:
            return Path(env_base)

        # scripts/docketcc/config.py -> scripts/docketcc -> scripts -> base
        return Path(__file__).resolve().parent.parent.parent

    def _load_config_file(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_path = self._base_dir / "config" / "config.yaml"
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
                self._merge_config(file_config)

        self._config["paths"]["base_dir"] = str(self._base_dir)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """Deep merge new configuration into existing configuration."""
        for key, value in new_config.items():
            if key in self._config and isinstance(self._config[key], dict) and isinstance(value, dict):
                self._config[key].update(value)
            else:
                self._config[key] = value

    @staticmethod
    def _load_secrets() -> Dict[str, Optional[str]]:
        """Snapshot credential environment variables."""
        return {name: os.environ.get(env_var) or None for name, env_var in SECRET_ENV_VARS.items()}

    @property
    def base_dir(self) -> Path:
        """Get the base directory path."""
        return self._base_dir

    @property
    def database_path(self) -> Path:
        """Get the database file path."""
        return self._base_dir / self._config["paths"]["database"]

    @property
    def backups_dir(self) -> Path:
        """Get the backups directory path."""
        return self._base_dir / self._config["paths"]["backups"]

    @property
    def logs_dir(self) -> Path:
        """Get the logs directory path."""
        return self._base_dir / self._config["paths"]["logs"]

    @property
    def timezone(self) -> str:
        return self._config["app"]["timezone"]

    @property
    def app_url(self) -> str:
        return self._config["app"]["url"]

    def secret(self, name: str) -> Optional[str]:
        """
        Get a credential captured from the environment at load time.

        Args:
            name: One of the keys of SECRET_ENV_VARS (e.g. 'ecfs_api_key').

        Returns:
            The secret value, or None if unset.
        """
        if name not in SECRET_ENV_VARS:
            raise KeyError(f"Unknown secret '{name}'")
        return self._secrets.get(name)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key.

        Supports dot notation for nested keys (e.g., 'ecfs.default_limit').
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def reload(self) -> None:
        """Reload configuration from file and environment."""
        self._config = copy.deepcopy(self.DEFAULTS)
        self._load_config_file()
        self._secrets = self._load_secrets()


def validate_docket_number(docket_number: str) -> tuple[bool, str]:
    """
    Validate an FCC docket number (e.g. '23-108' or '11-42').

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not docket_number:
        return False, "Docket number cannot be empty"
    if not DOCKET_PATTERN.match(docket_number.strip()):
        return False, f"Invalid docket number '{docket_number}'. Expected format NN-NNN (e.g. 23-108)"
    return True, ""


def normalize_email(email: str) -> str:
    """Lowercase and strip an email address."""
    return (email or "").strip().lower()


def validate_email(email: str) -> bool:
    """Loose syntactic check for an email address."""
    return bool(EMAIL_PATTERN.match(normalize_email(email)))


# Global configuration instance
config = Config()
