# tokengate/cogs/reconciliation_cog.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from croniter import croniter
from discord import Interaction, app_commands
from discord.ext import commands, tasks

from ..services.logging_service import LogLevel
from ..services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class ReconciliationCog(commands.Cog):
    """Runs the balance re-verification on a cron schedule"""

    def __init__(self, bot, reconciliation: ReconciliationService, cron_schedule: str):
        if not croniter.is_valid(cron_schedule):
            raise ValueError(f"Invalid CRON_SCHEDULE expression: {cron_schedule!r}")
        self.bot = bot
        self.reconciliation = reconciliation
        self.cron_schedule = cron_schedule
        self._last_tick: Optional[datetime] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def embed_logger(self):
        return getattr(self.bot, "embed_logger", None)

    async def cog_load(self):
        logger.info(f"Starting scheduled verification with schedule: {self.cron_schedule}")
        self.schedule_tick.start()

    async def cog_unload(self):
        self.schedule_tick.cancel()
        if self._run_task and not self._run_task.done():
            self._run_task.cancel()

    def is_due(self, now: datetime) -> bool:
        """
        True when a scheduled time fell between the previous tick and now.
        Several missed times collapse into one run.
        """
        if self._last_tick is None:
            # first tick: a matching current minute still counts
            self._last_tick = now.replace(second=0, microsecond=0) - timedelta(seconds=1)
        next_fire = croniter(self.cron_schedule, self._last_tick).get_next(datetime)
        self._last_tick = now
        return next_fire <= now

    @tasks.loop(minutes=1)
    async def schedule_tick(self):
        if self.is_due(datetime.now(timezone.utc)):
            self.launch_run()

    @schedule_tick.before_loop
    async def before_schedule_tick(self):
        await self.bot.wait_until_ready()

    def launch_run(self) -> bool:
        """Start a run in the background; False if one is already in flight (the trigger is dropped)"""
        if self.reconciliation.is_running:
            logger.info("Verification already in progress, skipping...")
            return False
        self._run_task = asyncio.create_task(self._run_safely())
        return True

    async def _run_safely(self):
        try:
            await self.reconciliation.run_reconciliation()
        except Exception as e:
            logger.exception(f"Error during verification run: {e}")
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Reconciliation",
                    error=e,
                    context="Verification run aborted while listing groups",
                )

    reconcile = app_commands.Group(name="reconcile", description="Token balance re-verification (admin only)")

    @reconcile.command(name="run", description="Re-verify every linked wallet now")
    @app_commands.checks.has_permissions(administrator=True)
    async def reconcile_run(self, interaction: Interaction):
        started = self.launch_run()
        if started:
            await interaction.response.send_message("🔄 Verification run started.", ephemeral=True)
        else:
            await interaction.response.send_message("⏳ A verification run is already in progress.", ephemeral=True)

        if self.embed_logger:
            await self.embed_logger.log_custom(
                service="Reconciliation",
                title="Manual Run Requested",
                description=f"<@{interaction.user.id}> requested a verification run",
                level=LogLevel.INFO,
                fields={"Started": "yes" if started else "no (already running)"},
            )

    @reconcile.command(name="status", description="Show the last verification run")
    @app_commands.checks.has_permissions(administrator=True)
    async def reconcile_status(self, interaction: Interaction):
        summary = self.reconciliation.last_summary
        lines = [f"Schedule: `{self.cron_schedule}`", f"Running: {'yes' if self.reconciliation.is_running else 'no'}"]
        if summary:
            lines.append(f"Last run: {summary.started_at:%Y-%m-%d %H:%M UTC}")
            lines.extend(f"**{k}**: {v}" for k, v in summary.as_fields().items())
        else:
            lines.append("No run completed since startup.")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)
