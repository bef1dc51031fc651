# tokengate/services/enforcement_service.py
"""
Discord side effects used by the reconciliation service:
direct-message notifications and the ban/unban access reset.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp
import discord

from ..utils.errors import EnforcementError

logger = logging.getLogger(__name__)


class DiscordMessageSender:
    """Best-effort direct messages to members"""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def notify(self, user_id: int, text: str) -> None:
        user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
        await user.send(text)


class DiscordMembershipEnforcer:
    """Removes a member from a guild while leaving them free to rejoin"""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def reset_membership(self, group_id: int, user_id: int) -> None:
        """
        Ban then immediately unban. Safe to repeat: a user who already left
        still gets banned and unbanned, ending in the same state.
        """
        guild = self.bot.get_guild(group_id)
        if guild is None:
            raise EnforcementError(group_id, user_id, "guild not available to the bot")

        target = discord.Object(id=user_id)
        try:
            await guild.ban(target, reason="Token balance below the lowest tier", delete_message_seconds=0)
            await guild.unban(target, reason="Access reset: member may rejoin after re-verifying")
        except (discord.HTTPException, aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            raise EnforcementError(group_id, user_id, str(e) or type(e).__name__)

        logger.info(f"Reset membership of {user_id} in guild {group_id}")
