"""
tokengate/services/logging_service.py
Admin-channel logging with Discord embeds
"""

import asyncio
import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import discord
from discord import Color, Embed

logger = logging.getLogger(__name__)

Fields = Optional[Union[List[tuple], Dict[str, Any]]]


class LogLevel(Enum):
    """Log level colors and emojis"""
    INFO = (Color.blue(), "ℹ️")
    SUCCESS = (Color.green(), "✅")
    WARNING = (Color.orange(), "⚠️")
    ERROR = (Color.red(), "❌")


class EmbedLogger:
    """Posts operational events to the admin log channel"""

    def __init__(self, bot: discord.Client, admin_channel_id: int):
        self.bot = bot
        self.admin_channel_id = int(admin_channel_id)
        self.admin_channel: Optional[discord.TextChannel | discord.Thread] = None
        self._retry_task: Optional[asyncio.Task] = None

        # Rate limiting to prevent spam
        self.rate_limit = {
            "messages": [],
            "max_per_minute": 30,
            "similar_message_cache": {},
        }

    async def _resolve_channel(self) -> Optional[discord.TextChannel | discord.Thread]:
        """Resolve the admin channel via API with cache fallback."""
        try:
            chan = await self.bot.fetch_channel(self.admin_channel_id)
            if isinstance(chan, (discord.TextChannel, discord.Thread)):
                return chan
        except discord.DiscordException as e:
            logger.debug(f"fetch_channel({self.admin_channel_id}) failed: {e}")
        chan = self.bot.get_channel(self.admin_channel_id)
        if isinstance(chan, (discord.TextChannel, discord.Thread)):
            return chan
        return None

    async def setup(self) -> bool:
        """
        Initialize the logging channel.
        Safe to call multiple times; retries once after ready if the channel is not resolvable yet.
        """
        self.admin_channel = await self._resolve_channel()

        if not self.admin_channel:
            logger.error(f"Admin log channel {self.admin_channel_id} not found (yet). Will retry once after ready.")
            if not self._retry_task:
                self._retry_task = asyncio.create_task(self._delayed_retry())
            return False

        await self.log_custom(
            service="Logging",
            title="Admin Logging Started",
            description="Token gate admin logging initialized",
            level=LogLevel.SUCCESS,
            fields={"Channel ID": str(self.admin_channel_id)},
        )
        return True

    async def _delayed_retry(self):
        """Retry channel resolution once after a short delay (post-ready)."""
        await self.bot.wait_until_ready()
        await asyncio.sleep(2)
        self.admin_channel = await self._resolve_channel()
        if self.admin_channel:
            logger.info(f"Admin log channel {self.admin_channel_id} resolved on retry.")
        else:
            logger.error(f"Admin log channel {self.admin_channel_id} still not found after retry.")

    def _should_rate_limit(self, content_hash: str) -> bool:
        """Check if message should be rate limited"""
        now = datetime.now(timezone.utc)

        self.rate_limit["messages"] = [
            msg_time for msg_time in self.rate_limit["messages"]
            if (now - msg_time).total_seconds() < 60
        ]
        if len(self.rate_limit["messages"]) >= self.rate_limit["max_per_minute"]:
            return True

        # Same message within 10 seconds
        last_sent = self.rate_limit["similar_message_cache"].get(content_hash)
        if last_sent and (now - last_sent).total_seconds() < 10:
            return True

        self.rate_limit["messages"].append(now)
        self.rate_limit["similar_message_cache"][content_hash] = now
        return False

    async def _safe_send(self, embed: Embed, content_hash: Optional[str] = None) -> Optional[discord.Message]:
        """Send embed if channel is ready and rate limiting allows."""
        if not self.admin_channel:
            return None

        if content_hash and self._should_rate_limit(content_hash):
            logger.debug("Rate limiting admin log message")
            return None

        try:
            return await self.admin_channel.send(embed=embed)
        except discord.HTTPException as e:
            if e.status == 429:
                logger.warning("Discord rate limited admin logging")
            else:
                logger.debug(f"Failed to send admin embed: {e}")
        return None

    def _create_base_embed(self, title: str, description: str, level: LogLevel) -> Embed:
        color, emoji = level.value
        return Embed(
            title=f"{emoji} {title}",
            description=description[:2000] if description else None,  # Discord limit
            color=color,
            timestamp=datetime.now(timezone.utc),
        )

    def _add_fields_to_embed(self, embed: Embed, fields: Fields):
        """Add fields to embed with proper formatting"""
        if not fields:
            return

        if isinstance(fields, dict):
            field_list = [(k, v, len(str(v)) < 50) for k, v in fields.items()]
        else:
            field_list = fields

        for field in field_list:
            if len(field) == 2:
                name, value = field
                inline = len(str(value)) < 50
            elif len(field) == 3:
                name, value, inline = field
            else:
                continue

            embed.add_field(name=str(name)[:256], value=str(value)[:1024] if value else "N/A", inline=bool(inline))
            # Discord has a limit of 25 fields per embed
            if len(embed.fields) >= 25:
                break

    async def log_error(self, service: str, error: Exception, context: Optional[str] = None):
        """Log errors with context and a traceback tail"""
        embed = self._create_base_embed(
            title="Service Error",
            description=f"Error occurred in **{service}**",
            level=LogLevel.ERROR,
        )
        self._add_fields_to_embed(embed, {
            "Service": service,
            "Error Type": f"`{type(error).__name__}`",
            "Timestamp": datetime.now(timezone.utc).strftime("%H:%M:%S UTC"),
        })
        embed.add_field(name="Error Message", value=f"```python\n{str(error)[:1000]}\n```", inline=False)

        if context:
            embed.add_field(name="Context", value=context[:500], inline=False)

        tb = traceback.format_exc()
        if tb and tb != "NoneType: None\n":
            embed.add_field(name="Traceback (tail)", value=f"```python\n{tb[-800:]}\n```", inline=False)

        embed.set_footer(text="Error Monitor")
        await self._safe_send(embed, f"error_{service}_{type(error).__name__}".lower())

    async def log_custom(
        self,
        service: str,
        title: str,
        description: str,
        level: LogLevel = LogLevel.INFO,
        fields: Fields = None,
        footer: Optional[str] = None,
    ):
        """Log custom events with flexible formatting"""
        embed = self._create_base_embed(title=f"[{service}] {title}", description=description, level=level)
        self._add_fields_to_embed(embed, fields)
        embed.set_footer(text=footer or f"{service} Service Monitor")

        content_hash = f"custom_{service}_{title}_{description}".lower().replace(" ", "_")
        await self._safe_send(embed, content_hash)
