from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import DAY_NAMES
from .source import DEFAULT_SERVER_URL, DEFAULT_TIMEOUT_SECONDS
from .targets import DEFAULT_WEEKLY_TARGET_HOURS


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    report_channel_id: int
    timezone: ZoneInfo
    aw_server_url: str
    aw_request_timeout_seconds: float
    week_start_day: str
    default_weekly_target_hours: float
    database_path: Path


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _positive_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _weekday_from_env(name: str, default: str) -> str:
    day = os.getenv(name, default).strip().lower()
    if day not in DAY_NAMES:
        raise ValueError(f"{name} must be a weekday name, got {day!r}")
    return day


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        report_channel_id=_required_int_env("REPORT_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        aw_server_url=os.getenv("AW_SERVER_URL", DEFAULT_SERVER_URL).strip(),
        aw_request_timeout_seconds=_positive_float_env("AW_REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        week_start_day=_weekday_from_env("WEEK_START_DAY", "wednesday"),
        default_weekly_target_hours=_positive_float_env("DEFAULT_WEEKLY_TARGET_HOURS", DEFAULT_WEEKLY_TARGET_HOURS),
        database_path=Path(os.getenv("DATABASE_PATH", "activity_targets.db").strip()),
    )
