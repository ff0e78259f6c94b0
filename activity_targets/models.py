from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone

ACTIVE = "active"
INACTIVE = "inactive"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")
DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True, slots=True)
class Source:
    id: str
    type: str


@dataclass(frozen=True, slots=True)
class RawEvent:
    timestamp: datetime
    duration_seconds: float
    status: str


@dataclass(frozen=True, slots=True)
class Span:
    start: datetime
    end: datetime
    kind: str = ACTIVE

    @property
    def duration_seconds(self) -> float:
        # Elapsed time, not wall-clock difference, when both ends share a DST-aware zone.
        return (self.end.astimezone(timezone.utc) - self.start.astimezone(timezone.utc)).total_seconds()


@dataclass(frozen=True, slots=True)
class DayTimeline:
    day: date
    spans: tuple[Span, ...]
    total_active_seconds: float
    total_inactive_seconds: float

    @property
    def is_empty(self) -> bool:
        return not self.spans


@dataclass(frozen=True, slots=True)
class DailyHours:
    date: str
    hours: float


@dataclass(frozen=True, slots=True)
class WeeklySummary:
    start_date: date
    end_date: date
    total_hours: float
    daily_breakdown: tuple[DailyHours, ...]


@dataclass(slots=True)
class TargetConfig:
    weekly_target_hours: float
    custom_targets: dict[str, float] = field(default_factory=dict)
    locked_days: dict[str, bool] = field(default_factory=dict)
    last_modified: datetime | None = None

    def is_locked(self, day: str) -> bool:
        return bool(self.locked_days.get(day, False))

    def unlocked_days(self) -> list[str]:
        return [day for day in WEEKDAYS if not self.is_locked(day)]

    def locked_total(self) -> float:
        return sum(self.custom_targets.get(day, 0.0) for day in WEEKDAYS if self.is_locked(day))


@dataclass(frozen=True, slots=True)
class TargetStatus:
    weekly_target: float
    weekly_total: float
    met: bool
    reason: str | None = None
