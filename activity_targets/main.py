from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import discord
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database, DatabaseConfigStore
from .errors import DataUnavailable
from .reporter import Reporter
from .source import ActivityWatchSource
from .targets import TargetAllocator
from .timeline import ActivityAggregator, utc_now

AUTO_REPORT_META_KEY = "last_auto_report_day"


class ActivityTargetsBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.source = ActivityWatchSource(config.aw_server_url, timeout=config.aw_request_timeout_seconds)
        self.aggregator = ActivityAggregator(self.source, tz=config.timezone)
        self.allocator = TargetAllocator(
            DatabaseConfigStore(db),
            default_weekly_target=config.default_weekly_target_hours,
        )
        self.reporter = Reporter(self.allocator, tz=config.timezone)

        self.logger = logging.getLogger("activity-targets-bot")

        # runtime_ready prevents the scheduler from running before channel/permission checks pass.
        self.runtime_ready = False
        self.report_channel: discord.TextChannel | None = None

    async def setup_hook(self) -> None:
        # Register slash commands during startup and begin the midnight scheduler loop.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.midnight_report_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")

    async def _validate_runtime_resources(self) -> bool:
        # Fail fast if guild/channel/permissions are misconfigured.
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return False

        report = guild.get_channel(self.config.report_channel_id)
        if not isinstance(report, discord.TextChannel):
            self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
            await self.close()
            return False

        me = guild.me
        if me is None and self.user is not None:
            me = guild.get_member(self.user.id)

        if me is None:
            self.logger.error("Unable to resolve bot member in guild %s", guild.id)
            await self.close()
            return False

        perms = report.permissions_for(me)
        if not perms.view_channel or not perms.send_messages:
            self.logger.error("Missing view/send permission in report channel %s", report.id)
            await self.close()
            return False

        self.report_channel = report

        # A missing ActivityWatch server is not fatal at startup; commands report it per request.
        if not await asyncio.to_thread(self.source.check_connection):
            self.logger.warning("ActivityWatch server %s is not reachable yet", self.config.aw_server_url)
        return True

    @tasks.loop(seconds=30)
    async def midnight_report_loop(self) -> None:
        if not self.runtime_ready or self.report_channel is None:
            return

        now_local = utc_now().astimezone(self.config.timezone)

        # The loop runs every 30s; only execute report logic during 00:00 local minute.
        if now_local.hour != 0 or now_local.minute != 0:
            return

        target_day = now_local.date() - timedelta(days=1)
        # Guard against duplicate posts during the same 00:00 minute window.
        if self.db.get_meta(AUTO_REPORT_META_KEY) == target_day.isoformat():
            return

        self.logger.info("Posting daily report for %s", target_day.isoformat())

        try:
            timeline = await asyncio.to_thread(self.aggregator.build_day_timeline, target_day)
            await self.reporter.post_day_report(self.report_channel, timeline)
        except DataUnavailable as exc:
            self.logger.error("Skipping daily report for %s: %s", target_day.isoformat(), exc)
            return
        except Exception:  # pragma: no cover - runtime safety
            self.logger.exception("Failed to post daily report")
            return

        self.db.set_meta(AUTO_REPORT_META_KEY, target_day.isoformat())

    @midnight_report_loop.before_loop
    async def before_midnight_report_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.midnight_report_loop.is_running():
            self.midnight_report_loop.cancel()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.database_path)
    db.initialize()

    bot = ActivityTargetsBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
