from __future__ import annotations

from datetime import date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from .models import ACTIVE, WEEKDAYS, DayTimeline, TargetStatus, WeeklySummary
from .targets import REASON_ALL_DAYS_LOCKED, REASON_FLOOR_SHORTFALL, REASON_OTHER_DAYS_LOCKED, TargetAllocator

try:
    import discord
except ModuleNotFoundError:  # pragma: no cover - allows tests without discord.py installed
    discord = None


def format_seconds(total_seconds: float) -> str:
    """Render a duration as HH:MM:SS for consistent report output."""
    safe_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_hours(hours: float) -> str:
    total_minutes = max(0, round(hours * 60))
    whole, minutes = divmod(total_minutes, 60)
    return f"{whole}h {minutes:02}m"


class ReportChannelLike(Protocol):
    async def send(self, content: str, **kwargs): ...


class Reporter:
    def __init__(self, allocator: TargetAllocator, tz: ZoneInfo) -> None:
        self.allocator = allocator
        self.tz = tz

    def _clock(self, value: datetime) -> str:
        return value.astimezone(self.tz).strftime("%H:%M:%S")

    def build_day_content(self, timeline: DayTimeline) -> str:
        day_local = timeline.day.isoformat()
        target = self.allocator.get_daily_target_for_date(timeline.day)
        actual = timeline.total_active_seconds / 3600

        header = f"**Activity - {day_local} ({timeline.day.strftime('%A')})**"
        if timeline.is_empty:
            return f"{header}\nNo tracked activity for {day_local}."

        first, last = timeline.spans[0], timeline.spans[-1]
        lines = [
            header,
            f"Active: `{format_seconds(timeline.total_active_seconds)}`"
            f" | Away: `{format_seconds(timeline.total_inactive_seconds)}`",
            f"First seen `{self._clock(first.start)}`, last seen `{self._clock(last.end)}`",
        ]
        if target > 0:
            lines.append(f"Target: `{format_hours(target)}` ({actual / target:.0%} reached)")

        # Long timelines are summarized to the active spans only.
        spans = timeline.spans if len(timeline.spans) <= 20 else [s for s in timeline.spans if s.kind == ACTIVE]
        for span in spans[:20]:
            marker = "+" if span.kind == ACTIVE else "-"
            lines.append(
                f"{marker} {self._clock(span.start)}-{self._clock(span.end)} `{format_seconds(span.duration_seconds)}`"
            )
        if len(spans) > 20:
            lines.append(f"... and {len(spans) - 20} more")
        return "\n".join(lines)

    def build_week_content(self, summary: WeeklySummary) -> str:
        lines = [
            f"**Weekly Activity - {summary.start_date.isoformat()} to {summary.end_date.isoformat()}**",
            f"Total: `{format_hours(summary.total_hours)}` of `{format_hours(self.allocator.weekly_target)}` target",
        ]
        for item in summary.daily_breakdown:
            day = date.fromisoformat(item.date)
            target = self.allocator.get_daily_target_for_date(day)
            target_text = f" / `{format_hours(target)}`" if target > 0 else ""
            lines.append(f"- {day.strftime('%a')} {item.date}: `{format_hours(item.hours)}`{target_text}")
        return "\n".join(lines)

    def build_targets_content(self) -> str:
        targets = self.allocator.daily_targets()
        lines = ["**Daily Targets**"]
        for day in WEEKDAYS:
            lock = " (locked)" if self.allocator.config.is_locked(day) else ""
            lines.append(f"- {day.capitalize()}: `{format_hours(targets[day])}`{lock}")
        lines.append(describe_status(self.allocator.status()))
        if self.allocator.last_save_error is not None:
            lines.append("Warning: targets could not be saved and will be lost on restart.")
        return "\n".join(lines)

    async def post_day_report(self, report_channel: ReportChannelLike, timeline: DayTimeline) -> bool:
        content = self.build_day_content(timeline)

        kwargs = {}
        if discord is not None:
            # Never ping users in automated summaries.
            kwargs["allowed_mentions"] = discord.AllowedMentions.none()

        await report_channel.send(content, **kwargs)
        return True


def describe_status(status: TargetStatus) -> str:
    summary = f"Weekly: `{format_hours(status.weekly_total)}` of `{format_hours(status.weekly_target)}`"
    if status.met:
        return summary
    if status.reason == REASON_OTHER_DAYS_LOCKED:
        return f"{summary} - target unmet because all other days are locked"
    if status.reason == REASON_FLOOR_SHORTFALL:
        return f"{summary} - locked days leave too little for the 5 minute minimum"
    if status.reason == REASON_ALL_DAYS_LOCKED:
        return f"{summary} - every day is locked, unlock a day to rebalance"
    return f"{summary} - use /target-balance to match the weekly target"
