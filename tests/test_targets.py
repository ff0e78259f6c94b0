from datetime import date

import pytest

from activity_targets.db import Database, DatabaseConfigStore
from activity_targets.errors import InvalidInput, PersistenceFailure
from activity_targets.models import WEEKDAYS, DailyHours, TargetConfig, WeeklySummary
from activity_targets.targets import (
    MIN_DAY_HOURS,
    REASON_ALL_DAYS_LOCKED,
    REASON_FLOOR_SHORTFALL,
    REASON_OTHER_DAYS_LOCKED,
    TargetAllocator,
)


class MemoryStore:
    def __init__(self, config: TargetConfig | None = None) -> None:
        self.config = config
        self.saves = 0

    def load(self) -> TargetConfig | None:
        return self.config

    def save(self, config: TargetConfig) -> None:
        self.saves += 1
        self.config = config


class FailingStore(MemoryStore):
    def save(self, config: TargetConfig) -> None:
        raise PersistenceFailure("disk full")


def make_allocator(weekly: float = 40.0) -> TargetAllocator:
    return TargetAllocator(MemoryStore(), default_weekly_target=weekly)


def total(allocator: TargetAllocator) -> float:
    return sum(allocator.daily_targets().values())


def test_defaults_split_equally_on_first_read() -> None:
    allocator = TargetAllocator(MemoryStore())

    targets = allocator.daily_targets()

    assert list(targets) == list(WEEKDAYS)
    assert all(value == pytest.approx(34.17 / 5) for value in targets.values())
    assert allocator.is_weekly_target_met()


def test_set_weekly_target_rescales_shape() -> None:
    allocator = make_allocator()
    allocator.update_day_target("monday", 10)

    allocator.set_weekly_target(40)
    assert total(allocator) == pytest.approx(40.0, abs=0.01)

    before = allocator.daily_targets()
    allocator.set_weekly_target(20)
    after = allocator.daily_targets()

    assert total(allocator) == pytest.approx(20.0, abs=0.01)
    for day in WEEKDAYS:
        assert after[day] == pytest.approx(before[day] / 2)


def test_set_weekly_target_scales_locked_days_too() -> None:
    allocator = make_allocator()
    allocator.toggle_lock("monday")

    allocator.set_weekly_target(20)

    assert allocator.daily_targets()["monday"] == pytest.approx(4.0)
    assert allocator.is_locked("monday")


@pytest.mark.parametrize("hours", [0, -5, float("nan"), "lots"])
def test_set_weekly_target_rejects_invalid_hours(hours) -> None:
    store = MemoryStore()
    allocator = TargetAllocator(store, default_weekly_target=40)

    with pytest.raises(InvalidInput):
        allocator.set_weekly_target(hours)

    assert allocator.weekly_target == 40
    assert store.saves == 0


def test_set_weekly_target_from_hours_and_minutes() -> None:
    allocator = make_allocator()

    allocator.set_weekly_target_hm(34, 10)

    assert allocator.weekly_target == pytest.approx(34 + 10 / 60)
    with pytest.raises(InvalidInput):
        allocator.set_weekly_target_hm(30, 75)


def test_update_day_target_keeps_weekly_sum() -> None:
    allocator = make_allocator()
    before = total(allocator)

    assert allocator.update_day_target("friday", 4) is True

    targets = allocator.daily_targets()
    assert targets["friday"] == 4
    assert total(allocator) == pytest.approx(before, abs=0.01)
    assert targets["monday"] == pytest.approx(9.0)


def test_update_day_target_skips_locked_days() -> None:
    allocator = make_allocator()
    allocator.toggle_lock("tuesday")

    allocator.update_day_target("monday", 12)

    targets = allocator.daily_targets()
    assert targets["tuesday"] == 8
    assert targets["wednesday"] == pytest.approx(8 - 4 / 3)
    assert total(allocator) == pytest.approx(40.0, abs=0.01)


def test_update_day_target_ignores_locked_or_unknown_day() -> None:
    store = MemoryStore()
    allocator = TargetAllocator(store, default_weekly_target=40)
    allocator.toggle_lock("monday")
    saves = store.saves

    assert allocator.update_day_target("monday", 2) is False
    assert allocator.update_day_target("saturday", 2) is False
    assert allocator.daily_targets()["monday"] == 8
    assert store.saves == saves


def test_update_day_target_clamps_other_days_to_floor() -> None:
    allocator = make_allocator()

    allocator.update_day_target("monday", 40)

    targets = allocator.daily_targets()
    assert all(targets[day] == MIN_DAY_HOURS for day in WEEKDAYS[1:])
    status = allocator.status()
    assert status.met is False
    assert status.reason == REASON_FLOOR_SHORTFALL


def test_update_with_all_other_days_locked_surfaces_divergence() -> None:
    allocator = make_allocator()
    for day in ("monday", "tuesday", "wednesday", "thursday"):
        allocator.toggle_lock(day)

    allocator.update_day_target("friday", 10)

    status = allocator.status()
    assert total(allocator) == pytest.approx(42.0)
    assert status.met is False
    assert status.reason == REASON_OTHER_DAYS_LOCKED


def test_auto_balance_respects_locked_day() -> None:
    allocator = make_allocator()
    allocator.update_day_target("monday", 12)
    allocator.toggle_lock("monday")
    allocator.config.custom_targets["tuesday"] = 1.0

    allocator.auto_balance()

    targets = allocator.daily_targets()
    assert targets["monday"] == 12
    assert total(allocator) == pytest.approx(40.0, abs=0.01)
    assert targets["tuesday"] < targets["wednesday"]
    assert allocator.status().met


def test_auto_balance_falls_back_to_equal_split() -> None:
    allocator = make_allocator()
    allocator.config.custom_targets = {day: 0.0 for day in WEEKDAYS}

    allocator.auto_balance()

    assert all(value == pytest.approx(8.0) for value in allocator.daily_targets().values())


def test_auto_balance_with_infeasible_remainder_sets_floor() -> None:
    allocator = make_allocator()
    allocator.update_day_target("monday", 39.9)
    allocator.toggle_lock("monday")

    allocator.auto_balance()

    targets = allocator.daily_targets()
    assert targets["monday"] == 39.9
    assert all(targets[day] == MIN_DAY_HOURS for day in WEEKDAYS[1:])
    assert allocator.status().reason == REASON_FLOOR_SHORTFALL


def test_apply_preset_scales_to_remaining_target() -> None:
    allocator = make_allocator()
    allocator.update_day_target("wednesday", 5)
    allocator.toggle_lock("wednesday")

    allocator.apply_preset("frontLoaded")

    targets = allocator.daily_targets()
    assert targets["wednesday"] == 5
    assert total(allocator) == pytest.approx(40.0, abs=0.01)
    assert targets["monday"] > targets["friday"]


def test_apply_equal_preset_is_idempotent() -> None:
    allocator = make_allocator()
    allocator.update_day_target("monday", 3)

    allocator.apply_preset("equal")
    first = allocator.daily_targets()
    allocator.apply_preset("equal")

    assert allocator.daily_targets() == first
    assert first["monday"] == pytest.approx(8.0)


def test_apply_unknown_preset_is_rejected() -> None:
    allocator = make_allocator()

    with pytest.raises(InvalidInput):
        allocator.apply_preset("weekendWarrior")


def test_set_from_logged_data_only_touches_active_unlocked_weekdays() -> None:
    allocator = make_allocator()
    allocator.toggle_lock("thursday")
    # 2026-01-28 is a Wednesday.
    summary = WeeklySummary(
        start_date=date(2026, 1, 28),
        end_date=date(2026, 2, 3),
        total_hours=21.55,
        daily_breakdown=(
            DailyHours(date="2026-01-28", hours=6.2),
            DailyHours(date="2026-01-29", hours=5.0),
            DailyHours(date="2026-01-30", hours=0.0),
            DailyHours(date="2026-01-31", hours=3.0),
            DailyHours(date="2026-02-01", hours=0.0),
            DailyHours(date="2026-02-02", hours=7.33),
            DailyHours(date="2026-02-03", hours=0.02),
        ),
    )

    changed = allocator.set_from_logged_data(summary)

    targets = allocator.daily_targets()
    assert changed == ["wednesday", "monday", "tuesday"]
    assert targets["wednesday"] == pytest.approx(6 + 2 / 12)
    assert targets["thursday"] == 8
    assert targets["friday"] == 8
    assert targets["monday"] == pytest.approx(7 + 4 / 12)
    assert targets["tuesday"] == MIN_DAY_HOURS


def test_toggle_lock_and_unknown_day() -> None:
    allocator = make_allocator()

    assert allocator.toggle_lock("friday") is True
    assert allocator.is_locked("friday")
    assert allocator.toggle_lock("friday") is False
    assert not allocator.is_locked("friday")

    with pytest.raises(InvalidInput):
        allocator.toggle_lock("sunday")


def test_daily_target_for_weekend_is_zero() -> None:
    allocator = make_allocator()

    assert allocator.get_daily_target_for_date("2026-02-01") == 0
    assert allocator.get_daily_target_for_date(date(2026, 2, 2)) == 8


def test_persistence_failure_keeps_state() -> None:
    allocator = TargetAllocator(FailingStore(), default_weekly_target=40)

    allocator.set_weekly_target(30)

    assert allocator.weekly_target == 30
    assert total(allocator) == pytest.approx(30.0)
    assert isinstance(allocator.last_save_error, PersistenceFailure)


def test_configuration_survives_reload_from_database() -> None:
    db = Database(":memory:")
    db.initialize()
    allocator = TargetAllocator(DatabaseConfigStore(db), default_weekly_target=40)
    allocator.update_day_target("monday", 10)
    allocator.toggle_lock("monday")

    reloaded = TargetAllocator(DatabaseConfigStore(db), default_weekly_target=40)

    assert reloaded.daily_targets() == allocator.daily_targets()
    assert reloaded.is_locked("monday")
    assert reloaded.last_modified is not None


def test_reset_restores_defaults() -> None:
    allocator = make_allocator(weekly=35)
    allocator.set_weekly_target(50)
    allocator.toggle_lock("monday")

    allocator.reset()

    assert allocator.weekly_target == 35
    assert not allocator.is_locked("monday")
    assert allocator.daily_targets()["monday"] == pytest.approx(7.0)


def test_unmet_reason_survives_reload_from_database() -> None:
    db = Database(":memory:")
    db.initialize()
    allocator = TargetAllocator(DatabaseConfigStore(db), default_weekly_target=40)
    for day in ("monday", "tuesday", "wednesday", "thursday"):
        allocator.toggle_lock(day)
    allocator.update_day_target("friday", 10)
    # Repeating the same value must not clear the indicator.
    allocator.update_day_target("friday", 10)

    reloaded = TargetAllocator(DatabaseConfigStore(db), default_weekly_target=40)

    assert allocator.status().reason == REASON_OTHER_DAYS_LOCKED
    assert reloaded.status().reason == REASON_OTHER_DAYS_LOCKED


def test_balance_with_every_day_locked_reports_all_days_locked() -> None:
    allocator = make_allocator()
    for day in ("monday", "tuesday", "wednesday", "thursday"):
        allocator.toggle_lock(day)
    allocator.update_day_target("friday", 10)
    allocator.toggle_lock("friday")

    allocator.auto_balance()

    status = allocator.status()
    assert total(allocator) == pytest.approx(42.0)
    assert status.reason == REASON_ALL_DAYS_LOCKED
