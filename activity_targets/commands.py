import asyncio
from datetime import date, timedelta

import discord
from discord import app_commands

from .errors import DataUnavailable, InvalidInput
from .models import WEEKDAYS
from .reporter import describe_status, format_hours
from .targets import PRESETS
from .timeline import week_start_for

DAY_CHOICES = [app_commands.Choice(name=day.capitalize(), value=day) for day in WEEKDAYS]
PRESET_CHOICES = [app_commands.Choice(name=name, value=name) for name in PRESETS]


def _parse_day(value: str | None, default: date) -> date:
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInput(f"Dates must look like YYYY-MM-DD, got `{value}`") from exc


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    def current_week_start(reference: date | None = None) -> date:
        today = reference or bot.aggregator.local_today()
        return week_start_for(today, bot.config.week_start_day)

    async def reply_targets(interaction, headline: str) -> None:
        content = f"{headline}\n{bot.reporter.build_targets_content()}"
        await interaction.response.send_message(content, ephemeral=True)

    @bot.tree.command(name="status", description="Show bot and ActivityWatch connection status", guild=guild_scope)
    async def status(interaction):
        connected = await asyncio.to_thread(bot.source.check_connection)
        week_start = current_week_start()
        lines = [
            "Activity tracker status: online",
            f"ActivityWatch server: `{bot.config.aw_server_url}` ({'reachable' if connected else 'unreachable'})",
            f"Timezone: `{bot.config.timezone.key}`",
            f"Current week: `{week_start.isoformat()}` to `{(week_start + timedelta(days=6)).isoformat()}`",
            describe_status(bot.allocator.status()),
        ]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="today", description="Show today's activity timeline so far", guild=guild_scope)
    async def today(interaction):
        await send_day(interaction, bot.aggregator.local_today())

    @bot.tree.command(name="day", description="Show the activity timeline for a date", guild=guild_scope)
    @app_commands.describe(value="Date as YYYY-MM-DD")
    async def day(interaction, value: str):
        try:
            day_value = _parse_day(value, bot.aggregator.local_today())
        except InvalidInput as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        await send_day(interaction, day_value)

    async def send_day(interaction, day_value: date) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            timeline = await asyncio.to_thread(bot.aggregator.build_day_timeline, day_value)
        except DataUnavailable as exc:
            await interaction.followup.send(f"Activity data unavailable: {exc}", ephemeral=True)
            return
        await interaction.followup.send(bot.reporter.build_day_content(timeline), ephemeral=True)

    @bot.tree.command(name="week", description="Show weekly totals against targets", guild=guild_scope)
    @app_commands.describe(value="Any date inside the week (YYYY-MM-DD), defaults to today")
    async def week(interaction, value: str | None = None):
        try:
            week_start = current_week_start(_parse_day(value, bot.aggregator.local_today()))
        except InvalidInput as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            summary = await asyncio.to_thread(bot.aggregator.build_weekly_summary, week_start)
        except DataUnavailable as exc:
            await interaction.followup.send(f"Activity data unavailable: {exc}", ephemeral=True)
            return
        await interaction.followup.send(bot.reporter.build_week_content(summary), ephemeral=True)

    @bot.tree.command(name="targets", description="Show daily targets", guild=guild_scope)
    async def targets(interaction):
        await interaction.response.send_message(bot.reporter.build_targets_content(), ephemeral=True)

    @bot.tree.command(name="target-weekly", description="Set the weekly target", guild=guild_scope)
    @app_commands.describe(hours="Whole hours", minutes="Extra minutes (0-59)")
    async def target_weekly(interaction, hours: app_commands.Range[int, 0, 168], minutes: app_commands.Range[int, 0, 59] = 0):
        try:
            bot.allocator.set_weekly_target_hm(hours, minutes)
        except InvalidInput as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        await reply_targets(interaction, f"Weekly target set to `{format_hours(bot.allocator.weekly_target)}`.")

    @bot.tree.command(name="target-day", description="Set one day's target and rebalance the others", guild=guild_scope)
    @app_commands.choices(day=DAY_CHOICES)
    async def target_day(interaction, day: app_commands.Choice[str], hours: float):
        try:
            applied = bot.allocator.update_day_target(day.value, hours)
        except InvalidInput as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        if not applied:
            await interaction.response.send_message(f"{day.name} is locked. Unlock it first.", ephemeral=True)
            return
        await reply_targets(interaction, f"{day.name} set to `{format_hours(hours)}`.")

    @bot.tree.command(name="target-lock", description="Lock or unlock a day's target", guild=guild_scope)
    @app_commands.choices(day=DAY_CHOICES)
    async def target_lock(interaction, day: app_commands.Choice[str]):
        locked = bot.allocator.toggle_lock(day.value)
        await reply_targets(interaction, f"{day.name} {'locked' if locked else 'unlocked'}.")

    @bot.tree.command(name="target-balance", description="Rebalance unlocked days to the weekly target", guild=guild_scope)
    async def target_balance(interaction):
        bot.allocator.auto_balance()
        await reply_targets(interaction, "Unlocked days rebalanced.")

    @bot.tree.command(name="target-preset", description="Apply a distribution preset to unlocked days", guild=guild_scope)
    @app_commands.choices(name=PRESET_CHOICES)
    async def target_preset(interaction, name: app_commands.Choice[str]):
        bot.allocator.apply_preset(name.value)
        await reply_targets(interaction, f"Preset `{name.value}` applied.")

    @bot.tree.command(name="target-sync", description="Copy a week's logged hours into the targets", guild=guild_scope)
    @app_commands.describe(value="Any date inside the week (YYYY-MM-DD), defaults to last week")
    async def target_sync(interaction, value: str | None = None):
        try:
            reference = _parse_day(value, bot.aggregator.local_today() - timedelta(days=7))
        except InvalidInput as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            summary = await asyncio.to_thread(bot.aggregator.build_weekly_summary, current_week_start(reference))
        except DataUnavailable as exc:
            await interaction.followup.send(f"Activity data unavailable: {exc}", ephemeral=True)
            return

        changed = bot.allocator.set_from_logged_data(summary)
        headline = f"Synced {', '.join(changed)}." if changed else "No unlocked weekday had logged time."
        await interaction.followup.send(f"{headline}\n{bot.reporter.build_targets_content()}", ephemeral=True)

    @bot.tree.command(name="target-reset", description="Reset targets to defaults", guild=guild_scope)
    async def target_reset(interaction):
        bot.allocator.reset()
        await reply_targets(interaction, "Targets reset to defaults.")
