from __future__ import annotations

import json
import logging
import math
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from .errors import PersistenceFailure
from .models import WEEKDAYS, TargetConfig

TARGET_CONFIG_KEY = "aw-daily-targets-config"


class Database:
    """Thin SQLite key/value store for target configuration and scheduler markers."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # meta: small key/value store for the target config blob and report markers.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO meta (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self._conn.commit()


class DatabaseConfigStore:
    """Persists a TargetConfig as a JSON blob under a fixed meta key."""

    def __init__(self, db: Database, key: str = TARGET_CONFIG_KEY, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.key = key
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> TargetConfig | None:
        raw = self.db.get_meta(self.key)
        if raw is None:
            return None
        try:
            return config_from_dict(json.loads(raw))
        except (TypeError, ValueError, AttributeError):
            self.logger.warning("Stored target configuration is unreadable, using defaults")
            return None

    def save(self, config: TargetConfig) -> None:
        try:
            self.db.set_meta(self.key, json.dumps(config_to_dict(config)))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Could not save target configuration: {exc}") from exc


def config_to_dict(config: TargetConfig) -> dict:
    return {
        "weeklyTarget": config.weekly_target_hours,
        "customTargets": dict(config.custom_targets),
        "lockedDays": dict(config.locked_days),
        "lastModified": config.last_modified.isoformat() if config.last_modified else None,
    }


def config_from_dict(data: dict) -> TargetConfig | None:
    # Older blobs may lack fields or carry keys we no longer use (e.g. "mode").
    weekly = float(data.get("weeklyTarget", 0))
    if not math.isfinite(weekly) or weekly <= 0:
        return None

    custom = {
        day: float(hours)
        for day, hours in (data.get("customTargets") or {}).items()
        if day in WEEKDAYS
    }
    locked = {day: bool(flag) for day, flag in (data.get("lockedDays") or {}).items() if day in WEEKDAYS}

    last_modified = None
    if data.get("lastModified"):
        last_modified = datetime.fromisoformat(data["lastModified"].replace("Z", "+00:00"))
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)

    return TargetConfig(
        weekly_target_hours=weekly,
        custom_targets=custom,
        locked_days=locked,
        last_modified=last_modified,
    )
