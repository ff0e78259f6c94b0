from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Protocol
from zoneinfo import ZoneInfo

from .errors import DataUnavailable, InvalidInput
from .models import ACTIVE, DAY_NAMES, INACTIVE, DailyHours, DayTimeline, RawEvent, Source, Span, WeeklySummary

PRESENCE_SOURCE_TYPE = "afkstatus"
FUSION_THRESHOLD_SECONDS = 1.0
DAYS_PER_WEEK = 7

# Last representable millisecond of a local day.
END_OF_DAY = time(23, 59, 59, 999000)


class ActivitySource(Protocol):
    def list_sources(self) -> list[Source]: ...

    def list_raw_events(self, source_id: str, start: datetime, end: datetime) -> list[RawEvent]: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    # Local midnight bounds expressed in UTC so subtraction yields elapsed time across DST shifts.
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, END_OF_DAY, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def week_start_for(day: date, start_weekday: str) -> date:
    """Return the latest date on or before ``day`` that falls on ``start_weekday``."""
    try:
        target = DAY_NAMES.index(start_weekday.lower())
    except ValueError as exc:
        raise InvalidInput(f"Unknown weekday: {start_weekday}") from exc
    return day - timedelta(days=(day.weekday() - target) % DAYS_PER_WEEK)


def event_to_span(event: RawEvent) -> Span:
    return Span(
        start=event.timestamp,
        end=event.timestamp + timedelta(seconds=event.duration_seconds),
        kind=ACTIVE if event.status == ACTIVE else INACTIVE,
    )


def merge_active_spans(spans: Iterable[Span], day_start: datetime, day_end: datetime) -> list[Span]:
    """Clip spans to the day and fuse anything overlapping or closer than the fusion threshold.

    The result is sorted, pairwise disjoint and every span has a positive duration.
    """
    clipped: list[Span] = []
    for span in spans:
        if span.duration_seconds <= 0:
            continue
        start = max(span.start, day_start).astimezone(timezone.utc)
        end = min(span.end, day_end).astimezone(timezone.utc)
        if end <= start:
            continue
        clipped.append(Span(start=start, end=end, kind=ACTIVE))

    clipped.sort(key=lambda item: (item.start, item.end))

    threshold = timedelta(seconds=FUSION_THRESHOLD_SECONDS)
    merged: list[Span] = []
    for span in clipped:
        if merged and span.start <= merged[-1].end + threshold:
            running = merged[-1]
            if span.end > running.end:
                merged[-1] = Span(start=running.start, end=span.end, kind=ACTIVE)
            continue
        merged.append(span)

    return merged


def build_day_timeline(raw_events: Iterable[RawEvent], day: date, tz: ZoneInfo) -> DayTimeline:
    day_start, day_end = day_bounds(day, tz)
    active = merge_active_spans(
        (event_to_span(event) for event in raw_events if event.status == ACTIVE),
        day_start,
        day_end,
    )

    # A day with no observed activity is valid and simply empty.
    if not active:
        return DayTimeline(day=day, spans=(), total_active_seconds=0.0, total_inactive_seconds=0.0)

    timeline: list[Span] = []
    active_seconds = 0.0
    inactive_seconds = 0.0
    for span in active:
        if timeline and span.start > timeline[-1].end:
            gap = Span(start=timeline[-1].end, end=span.start, kind=INACTIVE)
            timeline.append(gap)
            inactive_seconds += gap.duration_seconds
        timeline.append(span)
        active_seconds += span.duration_seconds

    return DayTimeline(
        day=day,
        spans=tuple(timeline),
        total_active_seconds=active_seconds,
        total_inactive_seconds=inactive_seconds,
    )


def summarize_week(timelines: list[DayTimeline]) -> WeeklySummary:
    if len(timelines) != DAYS_PER_WEEK:
        raise InvalidInput(f"A week needs {DAYS_PER_WEEK} day timelines, got {len(timelines)}")

    breakdown = tuple(
        DailyHours(date=item.day.isoformat(), hours=round(item.total_active_seconds / 3600, 2))
        for item in timelines
    )
    # Summing the rounded values keeps the total consistent with what is displayed per day.
    total_hours = round(sum(item.hours for item in breakdown), 2)

    return WeeklySummary(
        start_date=timelines[0].day,
        end_date=timelines[-1].day,
        total_hours=total_hours,
        daily_breakdown=breakdown,
    )


class ActivityAggregator:
    """Builds day timelines and weekly summaries from a presence source."""

    def __init__(self, source: ActivitySource, tz: ZoneInfo, logger: logging.Logger | None = None) -> None:
        self.source = source
        self.tz = tz
        self.logger = logger or logging.getLogger(__name__)

    def presence_source_id(self) -> str:
        candidates = sorted(
            (item for item in self.source.list_sources() if item.type == PRESENCE_SOURCE_TYPE),
            key=lambda item: item.id,
        )
        if not candidates:
            raise DataUnavailable(
                f"No '{PRESENCE_SOURCE_TYPE}' bucket found. Make sure the AFK watcher is running."
            )
        if len(candidates) > 1:
            self.logger.warning(
                "Found %d presence buckets, using %s", len(candidates), candidates[0].id
            )
        return candidates[0].id

    def build_day_timeline(self, day: date, source_id: str | None = None) -> DayTimeline:
        bucket_id = source_id or self.presence_source_id()
        day_start, day_end = day_bounds(day, self.tz)
        events = self.source.list_raw_events(bucket_id, day_start, day_end)
        timeline = build_day_timeline(events, day, self.tz)
        self.logger.debug(
            "Built timeline for %s: events=%d spans=%d active=%ss",
            day.isoformat(),
            len(events),
            len(timeline.spans),
            int(timeline.total_active_seconds),
        )
        return timeline

    def build_weekly_summary(self, week_start: date) -> WeeklySummary:
        # Any failing day aborts the whole week; partial weeks are never returned.
        bucket_id = self.presence_source_id()
        timelines = [
            self.build_day_timeline(week_start + timedelta(days=offset), source_id=bucket_id)
            for offset in range(DAYS_PER_WEEK)
        ]
        return summarize_week(timelines)

    def local_today(self, now_utc: datetime | None = None) -> date:
        current = now_utc or utc_now()
        return current.astimezone(self.tz).date()
