from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Protocol

from .errors import InvalidInput, PersistenceFailure
from .models import DAY_NAMES, WEEKDAYS, TargetConfig, TargetStatus, WeeklySummary
from .timeline import utc_now

DEFAULT_WEEKLY_TARGET_HOURS = 34.17  # 34h 10m
MIN_DAY_HOURS = 5 / 60
TARGET_TOLERANCE_HOURS = 0.01

# Relative per-day shapes; "equal" is filled in from the weekly target.
PRESETS: dict[str, dict[str, float] | None] = {
    "equal": None,
    "frontLoaded": {"monday": 8, "tuesday": 8, "wednesday": 7, "thursday": 6, "friday": 5.17},
    "backLoaded": {"monday": 5.17, "tuesday": 6, "wednesday": 7, "thursday": 8, "friday": 8},
    "balanced": {"monday": 7, "tuesday": 7, "wednesday": 6.17, "thursday": 7, "friday": 7},
}

REASON_OTHER_DAYS_LOCKED = "other-days-locked"
REASON_FLOOR_SHORTFALL = "floor-shortfall"
REASON_ALL_DAYS_LOCKED = "all-days-locked"


class ConfigStore(Protocol):
    def load(self) -> TargetConfig | None: ...

    def save(self, config: TargetConfig) -> None: ...


def equal_split(hours: float) -> dict[str, float]:
    share = hours / len(WEEKDAYS)
    return {day: share for day in WEEKDAYS}


def round_to_five_minutes(hours: float) -> float:
    return max(MIN_DAY_HOURS, math.floor(hours * 12 + 0.5) / 12)


def _require_weekday(day: str) -> str:
    if day not in WEEKDAYS:
        raise InvalidInput(f"Unknown weekday: {day!r}. Expected one of {', '.join(WEEKDAYS)}")
    return day


def _require_hours(hours: float, *, positive: bool) -> float:
    try:
        value = float(hours)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Hours must be a number, got {hours!r}") from exc
    if not math.isfinite(value):
        raise InvalidInput("Hours must be finite")
    if positive and value <= 0:
        raise InvalidInput("Weekly target must be positive")
    if value < 0:
        raise InvalidInput("Hours must not be negative")
    return value


class TargetAllocator:
    """Owns the weekly target configuration and keeps per-day targets consistent with it.

    Every mutation is persisted through the injected store. A failed save is logged and
    recorded in ``last_save_error`` but the in-memory configuration stays authoritative.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        default_weekly_target: float = DEFAULT_WEEKLY_TARGET_HOURS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.default_weekly_target = _require_hours(default_weekly_target, positive=True)
        self.logger = logger or logging.getLogger(__name__)
        self.last_save_error: PersistenceFailure | None = None
        self.config = store.load() or self._default_config()

    def _default_config(self) -> TargetConfig:
        return TargetConfig(weekly_target_hours=self.default_weekly_target, last_modified=utc_now())

    def _targets(self) -> dict[str, float]:
        # Lazily populate an equal split the first time targets are read.
        if not self.config.custom_targets:
            self.config.custom_targets = equal_split(self.config.weekly_target_hours)
        return self.config.custom_targets

    def _commit(self, targets: dict[str, float] | None = None) -> None:
        if targets is not None:
            self.config.custom_targets = targets
        self.config.last_modified = utc_now()
        try:
            self.store.save(self.config)
        except PersistenceFailure as exc:
            self.logger.exception("Failed to save target configuration")
            self.last_save_error = exc
        else:
            self.last_save_error = None

    # Reads

    @property
    def weekly_target(self) -> float:
        return self.config.weekly_target_hours

    def daily_targets(self) -> dict[str, float]:
        targets = self._targets()
        return {day: targets.get(day, 0.0) for day in WEEKDAYS}

    def weekly_total(self) -> float:
        return sum(self.daily_targets().values())

    def is_weekly_target_met(self) -> bool:
        return abs(self.weekly_total() - self.weekly_target) < TARGET_TOLERANCE_HOURS

    def status(self) -> TargetStatus:
        met = self.is_weekly_target_met()
        return TargetStatus(
            weekly_target=self.weekly_target,
            weekly_total=self.weekly_total(),
            met=met,
            reason=None if met else self._unmet_reason(),
        )

    def _unmet_reason(self) -> str | None:
        # Derived from the stored configuration alone so it survives restarts.
        targets = self.daily_targets()
        unlocked = self.config.unlocked_days()
        if not unlocked:
            return REASON_ALL_DAYS_LOCKED
        at_floor = any(math.isclose(targets[day], MIN_DAY_HOURS) for day in unlocked)
        if at_floor and self.weekly_total() > self.weekly_target:
            return REASON_FLOOR_SHORTFALL
        if len(unlocked) == 1:
            return REASON_OTHER_DAYS_LOCKED
        return None

    def is_locked(self, day: str) -> bool:
        return self.config.is_locked(_require_weekday(day))

    def get_daily_target_for_date(self, value: date | str) -> float:
        if isinstance(value, str):
            value = date.fromisoformat(value)
        day = DAY_NAMES[value.weekday()]
        if day not in WEEKDAYS:
            return 0.0
        return self.daily_targets()[day]

    # Mutations

    def set_weekly_target(self, hours: float) -> None:
        hours = _require_hours(hours, positive=True)
        targets = dict(self.daily_targets())
        current_total = sum(targets.values())

        # Rescaling touches locked days too: the anchor itself is changing.
        if current_total > 0:
            factor = hours / current_total
            targets = {day: value * factor for day, value in targets.items()}
        else:
            targets = equal_split(hours)

        self.config.weekly_target_hours = hours
        self.logger.info("Weekly target set to %.2fh", hours)
        self._commit(targets)

    def set_weekly_target_hm(self, hours: int, minutes: int = 0) -> None:
        if minutes < 0 or minutes >= 60:
            raise InvalidInput("Minutes must be between 0 and 59")
        self.set_weekly_target(hours + minutes / 60)

    def update_day_target(self, day: str, new_hours: float) -> bool:
        if day not in WEEKDAYS:
            self.logger.debug("Ignoring target edit for unknown day %r", day)
            return False
        if self.config.is_locked(day):
            self.logger.debug("Ignoring target edit for locked day %s", day)
            return False
        new_hours = _require_hours(new_hours, positive=False)

        targets = dict(self.daily_targets())
        difference = new_hours - targets[day]
        targets[day] = new_hours

        others = [other for other in self.config.unlocked_days() if other != day]
        if others:
            adjustment = -difference / len(others)
            for other in others:
                targets[other] = max(MIN_DAY_HOURS, targets[other] + adjustment)
        elif difference:
            self.logger.info("No unlocked day left to absorb %+.2fh for %s", -difference, day)

        self.logger.info("Target for %s set to %.2fh", day, new_hours)
        self._commit(targets)
        return True

    def _fill_unlocked(self, shape: dict[str, float]) -> None:
        """Scale ``shape`` over the unlocked days so they consume what the locked days leave."""
        targets = dict(self.daily_targets())
        unlocked = self.config.unlocked_days()
        if not unlocked:
            self.logger.debug("Every day is locked, nothing to redistribute")
            return

        remaining = self.weekly_target - self.config.locked_total()
        if remaining <= 0 or remaining < len(unlocked) * MIN_DAY_HOURS:
            for day in unlocked:
                targets[day] = MIN_DAY_HOURS
        else:
            shape_total = sum(shape.get(day, 0.0) for day in unlocked)
            if shape_total > 0:
                factor = remaining / shape_total
                for day in unlocked:
                    targets[day] = max(MIN_DAY_HOURS, shape.get(day, 0.0) * factor)
            else:
                share = remaining / len(unlocked)
                for day in unlocked:
                    targets[day] = max(MIN_DAY_HOURS, share)

        self._commit(targets)

    def auto_balance(self) -> None:
        self._fill_unlocked(self.daily_targets())
        self.logger.info("Rebalanced unlocked days to weekly target %.2fh", self.weekly_target)

    def apply_preset(self, name: str) -> None:
        if name not in PRESETS:
            raise InvalidInput(f"Unknown preset {name!r}. Expected one of {', '.join(PRESETS)}")
        shape = PRESETS[name] or equal_split(self.weekly_target)
        self._fill_unlocked(shape)
        self.logger.info("Applied preset %s", name)

    def set_from_logged_data(self, summary: WeeklySummary) -> list[str]:
        """Copy logged hours into unlocked weekdays that saw activity; returns the days changed."""
        targets = dict(self.daily_targets())
        changed: list[str] = []
        for item in summary.daily_breakdown:
            if item.hours <= 0:
                continue
            day = DAY_NAMES[date.fromisoformat(item.date).weekday()]
            if day not in WEEKDAYS or self.config.is_locked(day):
                continue
            targets[day] = round_to_five_minutes(item.hours)
            changed.append(day)

        if changed:
            self.logger.info("Targets synced from logged data for %s", ", ".join(changed))
            self._commit(targets)
        return changed

    def toggle_lock(self, day: str) -> bool:
        day = _require_weekday(day)
        locked = not self.config.is_locked(day)
        self.config.locked_days[day] = locked
        self.logger.info("%s %s", "Locked" if locked else "Unlocked", day)
        self._commit()
        return locked

    def reset(self) -> None:
        self.config = self._default_config()
        self.logger.info("Target configuration reset to defaults")
        self._commit()

    @property
    def last_modified(self) -> datetime | None:
        return self.config.last_modified
