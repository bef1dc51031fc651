# tokengate/services/service_loader.py
import logging
from datetime import datetime, timezone

import discord

from tokengate.database.database_service import database_service
from tokengate.services.access_store import AccessStateStore
from tokengate.services.balance_oracle import BalanceOracle
from tokengate.services.enforcement_service import DiscordMembershipEnforcer, DiscordMessageSender
from tokengate.services.logging_service import EmbedLogger
from tokengate.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


async def init_core_services(bot: discord.Client, config):
    """Initialize database, admin logger, store, oracle and the reconciliation service"""
    started = datetime.now(timezone.utc)
    logger.info("Starting core services initialization...")

    # Create logger object but do not require the channel cache yet
    embed_logger = None
    if config.admin_log_channel_id:
        logger.info(f"Creating embed logger for channel {config.admin_log_channel_id}...")
        embed_logger = EmbedLogger(bot, int(config.admin_log_channel_id))
        database_service.set_logger(embed_logger)
    else:
        logger.info("Admin log channel not configured - running without embed logging")

    try:
        pool = await database_service.initialize()
    except Exception as e:
        logger.error(f"Failed to initialize database service: {e}")
        raise

    store = AccessStateStore(pool)
    oracle = BalanceOracle.from_config(config)
    reconciliation = ReconciliationService(
        store,
        oracle,
        notifier=DiscordMessageSender(bot),
        enforcer=DiscordMembershipEnforcer(bot),
        notify_members=config.notify_members,
        embed_logger=embed_logger,
    )
    logger.info(
        f"Balance oracle ready ({config.helius_rpc_url}, min spacing {config.rate_limit_ms}ms, "
        f"timeout {config.oracle_timeout_seconds}s)"
    )

    total = (datetime.now(timezone.utc) - started).total_seconds()
    logger.info(f"Core services initialization completed in {total:.2f}s")
    return embed_logger, store, reconciliation
