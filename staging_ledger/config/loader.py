"""Configuration loader for processes embedding the staging ledger."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///data/staging-ledger.sqlite"
DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_JOURNAL_MODE = "WAL"
DEFAULT_SYNCHRONOUS = "NORMAL"
DEFAULT_PLACEHOLDER_INBOX_DIR = "inbox"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_PROFILE_DICT: dict[str, Any] = {
    "environment": DEFAULT_ENVIRONMENT,
    "database": {
        "url": DEFAULT_DATABASE_URL,
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
        "journal_mode": DEFAULT_JOURNAL_MODE,
        "synchronous": DEFAULT_SYNCHRONOUS,
    },
    "ledger": {"placeholder_inbox_dir": DEFAULT_PLACEHOLDER_INBOX_DIR},
    "logging": {"level": DEFAULT_LOG_LEVEL, "json": False},
}
CONFIG_PROFILE_ENV = "STAGING_LEDGER_CONFIG_PROFILE"
CONFIG_DIR_ENV = "STAGING_LEDGER_CONFIG_DIR"
DATABASE_URL_ENV = "STAGING_LEDGER_DATABASE_URL"
DEFAULT_PROFILE = "dev"
DEFAULT_CONFIG_ROOT = Path(__file__).resolve().parents[2] / "config" / "profiles"
CONFIG_EXTENSIONS = (".yaml", ".yml")

_JOURNAL_MODES = {"WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF"}
_SYNCHRONOUS_LEVELS = {"OFF", "NORMAL", "FULL", "EXTRA"}


@dataclass
class DatabaseConfig:
    url: str = DEFAULT_DATABASE_URL
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    journal_mode: str = DEFAULT_JOURNAL_MODE
    synchronous: str = DEFAULT_SYNCHRONOUS


@dataclass
class LedgerConfig:
    placeholder_inbox_dir: str = DEFAULT_PLACEHOLDER_INBOX_DIR


@dataclass
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL
    json: bool = False


@dataclass
class Settings:
    environment: str = DEFAULT_ENVIRONMENT
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def database_url(self) -> str:
        return self.database.url


def load_settings(
    profile: str | None = None, config_dir: str | Path | None = None
) -> Settings:
    """Load settings from the requested profile or fall back to defaults."""

    profile_name = profile or os.getenv(CONFIG_PROFILE_ENV, DEFAULT_PROFILE)
    config_root = Path(
        config_dir or os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_ROOT)
    ).expanduser()
    config_data = _load_profile_dict(profile_name, config_root)
    if not config_data:
        config_data = copy.deepcopy(DEFAULT_PROFILE_DICT)

    database_config = _build_database_config(config_data.get("database"))
    database_config.url = os.getenv(DATABASE_URL_ENV, database_config.url)

    ledger_cfg = config_data.get("ledger") or {}
    logging_cfg = config_data.get("logging") or {}

    return Settings(
        environment=str(config_data.get("environment", DEFAULT_ENVIRONMENT)),
        database=database_config,
        ledger=LedgerConfig(
            placeholder_inbox_dir=str(
                ledger_cfg.get("placeholder_inbox_dir", DEFAULT_PLACEHOLDER_INBOX_DIR)
            )
        ),
        logging=LoggingConfig(
            level=str(logging_cfg.get("level", DEFAULT_LOG_LEVEL)).upper(),
            json=bool(logging_cfg.get("json", False)),
        ),
        raw=config_data,
    )


def _load_profile_dict(profile_name: str, config_root: Path) -> dict[str, Any]:
    """Load the YAML profile if available, otherwise return an empty dict."""

    if not config_root.exists():
        return {}

    for extension in CONFIG_EXTENSIONS:
        candidate = config_root / f"{profile_name}{extension}"
        if not candidate.exists():
            continue
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise RuntimeError(
                f"Failed to parse config profile {candidate}: {exc}"
            ) from exc
        if not isinstance(loaded, dict):
            raise RuntimeError(
                f"Config profile {candidate} must be a mapping at the root"
            )
        return loaded

    return {}


def _build_database_config(database_cfg: dict[str, Any] | None) -> DatabaseConfig:
    database_cfg = database_cfg or {}
    journal_mode = str(database_cfg.get("journal_mode", DEFAULT_JOURNAL_MODE)).upper()
    if journal_mode not in _JOURNAL_MODES:
        raise RuntimeError(f"Unsupported journal_mode '{journal_mode}'")
    synchronous = str(database_cfg.get("synchronous", DEFAULT_SYNCHRONOUS)).upper()
    if synchronous not in _SYNCHRONOUS_LEVELS:
        raise RuntimeError(f"Unsupported synchronous level '{synchronous}'")
    return DatabaseConfig(
        url=str(database_cfg.get("url", DEFAULT_DATABASE_URL)),
        busy_timeout_ms=int(
            database_cfg.get("busy_timeout_ms", DEFAULT_BUSY_TIMEOUT_MS)
        ),
        journal_mode=journal_mode,
        synchronous=synchronous,
    )
