"""
YAML configuration for lingua-progress.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from lingua_progress.exceptions import ConfigError
from lingua_progress.scheduler import DEFAULT_CURVE, ReviewCurve

DEFAULT_CONFIG_PATH = Path("~/.lingua-progress/config.yaml")
DEFAULT_DATABASE = "~/.lingua-progress/vocabulary.db"
DATABASE_ENV_VAR = "LINGUA_PROGRESS_DB"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class SyncConfig:
    host: str = "0.0.0.0"
    port: int = 0
    pin_length: int = 4
    session_timeout: float = 300.0


@dataclass(frozen=True)
class AppConfig:
    """Settings for the CLI and the sync server."""

    database: str = DEFAULT_DATABASE
    log_level: str = "INFO"
    sync: SyncConfig = field(default_factory=SyncConfig)
    review_curve: ReviewCurve = DEFAULT_CURVE

    @property
    def database_path(self) -> Path:
        return Path(self.database).expanduser()


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load configuration from *path*, or the default location.

    A missing default file yields the built-in defaults; a missing file
    that was named explicitly is an error. ``LINGUA_PROGRESS_DB`` overrides
    the database path either way.

    Raises:
        ConfigError: If the file is missing (explicit path only), is not
            valid YAML, or holds values of the wrong type.
    """
    if path is None:
        candidate = DEFAULT_CONFIG_PATH.expanduser()
        data = _load_yaml_file(candidate) if candidate.exists() else {}
    else:
        candidate = Path(path).expanduser()
        if not candidate.exists():
            raise ConfigError(f"Config file not found: {candidate}")
        data = _load_yaml_file(candidate)

    config = _parse_config(data)
    env_db = os.environ.get(DATABASE_ENV_VAR)
    if env_db:
        config = AppConfig(
            database=env_db,
            log_level=config.log_level,
            sync=config.sync,
            review_curve=config.review_curve,
        )
    logging.getLogger(__name__).debug("Loaded config from %s", candidate)
    return config


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load YAML from a file; an empty file is an empty mapping."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line_num = mark.line + 1 if mark else None
        raise ConfigError(f"Invalid YAML in {path}: {e}", line=line_num) from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping (dictionary)")
    return data


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _parse_config(data: Dict[str, Any]) -> AppConfig:
    database = data.get("database", DEFAULT_DATABASE)
    if not isinstance(database, str) or not database.strip():
        raise ConfigError("'database' must be a non-empty string")

    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(
            f"'log_level' must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}"
        )

    sync_data = _section(data, "sync")
    try:
        sync = SyncConfig(
            host=str(sync_data.get("host", SyncConfig.host)),
            port=int(sync_data.get("port", SyncConfig.port)),
            pin_length=int(sync_data.get("pin_length", SyncConfig.pin_length)),
            session_timeout=float(
                sync_data.get("session_timeout", SyncConfig.session_timeout)
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid 'sync' setting: {e}") from e
    if not 0 <= sync.port <= 65535:
        raise ConfigError(f"'sync.port' out of range: {sync.port}")
    if sync.pin_length < 4:
        raise ConfigError("'sync.pin_length' must be at least 4")

    try:
        curve = ReviewCurve.from_mapping(_section(data, "review_curve"))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid 'review_curve' setting: {e}") from e

    return AppConfig(
        database=database,
        log_level=log_level,
        sync=sync,
        review_curve=curve,
    )
