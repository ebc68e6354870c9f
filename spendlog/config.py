"""Global configuration for Spendlog."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

STORAGE_BACKENDS = ("memory", "sqlite", "mongo")
REPORT_STRATEGIES = ("scan", "precomputed")

DEFAULT_TEAM: List[Dict[str, str]] = [
    {"first_name": "Niv", "last_name": "Romano"},
    {"first_name": "Moshe Matan", "last_name": "Sityon"},
]


@dataclass
class Settings:
    """Runtime settings, usually read from the environment."""
    storage: str = "sqlite"
    db_path: str = "spendlog.db"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "spendlog"
    report_strategy: str = "scan"
    log_level: str = "INFO"

    def __post_init__(self):
        if self.storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage must be one of {', '.join(STORAGE_BACKENDS)}, got {self.storage!r}"
            )
        if self.report_strategy not in REPORT_STRATEGIES:
            raise ValueError(
                f"report_strategy must be one of {', '.join(REPORT_STRATEGIES)}, "
                f"got {self.report_strategy!r}"
            )


def _parse_json_env(var_name: str) -> Any:
    value = os.getenv(var_name)
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def get_settings() -> Settings:
    """Build settings from SPENDLOG_* environment variables."""
    defaults = Settings()
    return Settings(
        storage=os.getenv("SPENDLOG_STORAGE", defaults.storage).lower(),
        db_path=os.getenv("SPENDLOG_DB_PATH", defaults.db_path),
        mongo_uri=os.getenv("SPENDLOG_MONGO_URI", defaults.mongo_uri),
        mongo_db=os.getenv("SPENDLOG_MONGO_DB", defaults.mongo_db),
        report_strategy=os.getenv("SPENDLOG_REPORT_STRATEGY", defaults.report_strategy).lower(),
        log_level=os.getenv("SPENDLOG_LOG_LEVEL", defaults.log_level).upper(),
    )


def get_team() -> List[Dict[str, str]]:
    """Return the team listing, with optional env override."""
    parsed = _parse_json_env("SPENDLOG_TEAM_JSON")
    if isinstance(parsed, list) and all(
        isinstance(m, dict) and "first_name" in m and "last_name" in m for m in parsed
    ):
        return [{"first_name": m["first_name"], "last_name": m["last_name"]} for m in parsed]
    return copy.deepcopy(DEFAULT_TEAM)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the spendlog logger, once."""
    logger = logging.getLogger("spendlog")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
