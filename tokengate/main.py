"""
tokengate/main.py
Bootstrap: init services, load cogs, sync slash commands
"""
import asyncio
import logging
from datetime import datetime, timezone

import discord
from discord.ext import commands

from tokengate.cogs.gate_cog import GateCog
from tokengate.cogs.reconciliation_cog import ReconciliationCog
from tokengate.database.database_service import database_service
from tokengate.services.logging_service import EmbedLogger, LogLevel
from tokengate.services.service_loader import init_core_services
from tokengate.utils.config import Config
from tokengate.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


class TokenGateBot(commands.Bot):
    def __init__(self, config: Config):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True  # ban/unban and member lookups
        super().__init__(command_prefix=config.command_prefix, intents=intents)
        self.config = config
        self.db_service = database_service
        self.embed_logger: EmbedLogger | None = None
        self.startup_time = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Bot setup hook called - initializing services...")
        self.startup_time = datetime.now(timezone.utc)

        try:
            self.embed_logger, store, reconciliation = await init_core_services(self, self.config)
        except Exception as e:
            logger.error(f"Failed to initialize core services: {e}")
            raise

        await self.add_cog(GateCog(self, store, reconciliation))
        await self.add_cog(ReconciliationCog(self, reconciliation, self.config.cron_schedule))
        logger.info(f"Loaded {len(self.cogs)} cogs successfully")

        # Schedule post-login init that runs AFTER we're actually connected
        asyncio.create_task(self._post_login_init())

    async def _post_login_init(self):
        """Post-login initialization after bot is connected"""
        await self.wait_until_ready()

        if self.embed_logger:
            try:
                await self.embed_logger.setup()
            except Exception as e:
                logger.warning(f"Embed logger setup failed: {e}")

        await self._sync_app_commands()

        if self.embed_logger:
            await self.embed_logger.log_custom(
                service="Bot Startup",
                title="Post-Login Initialization",
                description="Bot is ready, token gate and scheduler are active",
                level=LogLevel.INFO,
                fields={
                    "Bot ID": str(self.user.id),
                    "Guild Count": str(len(self.guilds)),
                    "Cogs Loaded": ", ".join(self.cogs),
                    "Schedule": f"`{self.config.cron_schedule}`",
                },
            )

    async def _sync_app_commands(self):
        """Sync application commands (guild first when configured, then global)"""
        try:
            if self.config.sync_guild_id:
                gobj = discord.Object(id=self.config.sync_guild_id)
                self.tree.copy_global_to(guild=gobj)
                synced_guild = await self.tree.sync(guild=gobj)
                logger.info(f"Synced {len(synced_guild)} guild slash command(s) to {self.config.sync_guild_id}")

            synced_global = await self.tree.sync()
            logger.info(f"Synced {len(synced_global)} global slash command(s)")
        except Exception as e:
            logger.exception("Slash command sync failed")
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Bot Startup",
                    error=e,
                    context="Slash command sync failed during startup",
                )

    async def on_ready(self):
        startup_duration = None
        if self.startup_time:
            startup_duration = (datetime.now(timezone.utc) - self.startup_time).total_seconds()

        logger.info(f"Logged in as {self.user} ({self.user.id})")
        await self.change_presence(
            activity=discord.Activity(type=discord.ActivityType.watching, name="token balances")
        )

        if self.embed_logger:
            await self.embed_logger.log_custom(
                service="Bot Status",
                title="🚀 Bot Ready",
                description="Token gate bot is now online",
                level=LogLevel.SUCCESS,
                fields={
                    "Bot": str(self.user),
                    "Startup Time": f"{startup_duration:.2f}s" if startup_duration else "Unknown",
                    "Guilds": str(len(self.guilds)),
                },
            )

    async def on_guild_join(self, guild: discord.Guild):
        logger.info(f"Joined guild: {guild.name} ({guild.id}) with {guild.member_count} members")

    async def on_guild_remove(self, guild: discord.Guild):
        logger.info(f"Left guild: {guild.name} ({guild.id})")

    async def on_error(self, event: str, *args, **kwargs):
        """Global error handler"""
        logger.exception(f"Error in event {event}")

        if self.embed_logger:
            await self.embed_logger.log_error(
                service="Bot Core",
                error=Exception(f"Event error: {event}"),
                context=f"Global error in event {event} - Args: {len(args)}, Kwargs: {len(kwargs)}",
            )

    async def close(self):
        """Clean shutdown"""
        logger.info("Bot shutting down...")

        if self.embed_logger and self.is_ready():
            await self.embed_logger.log_custom(
                service="Bot Status",
                title="🔴 Bot Shutting Down",
                description="Token gate bot is shutting down",
                level=LogLevel.WARNING,
                fields={"Guilds Served": str(len(self.guilds))},
            )

        try:
            await self.db_service.close()
        except Exception as e:
            logger.error(f"Error closing database: {e}")

        await super().close()


async def main():
    """Main entry point"""
    setup_logging()
    config = Config()

    missing_config = config.missing()
    if missing_config:
        logger.error(f"Missing critical configuration: {', '.join(missing_config)}")
        return

    logger.info("=" * 60)
    logger.info("Starting token gate bot...")
    logger.info(f"Database: {config.db_host}:{config.db_port}/{config.db_name}")
    logger.info(f"Helius RPC: {config.helius_rpc_url}")
    logger.info(f"Reconciliation schedule: {config.cron_schedule}")
    logger.info(f"Admin Log Channel: {config.admin_log_channel_id or 'disabled'}")
    logger.info("=" * 60)

    bot = TokenGateBot(config)

    try:
        await bot.start(config.bot_token)
    except Exception as e:
        logger.exception(f"Bot crashed with error: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
        logger.info("Bot shutdown complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested via keyboard interrupt")
    finally:
        logger.info("Application terminated")


if __name__ == "__main__":
    run()
