# tokengate/cogs/gate_cog.py
import logging

import discord
from discord import Interaction, app_commands
from discord.ext import commands

from ..database.models import GatedChat
from ..database.models.verification_log import ACTION_ACCESS_GRANTED
from ..services.access_store import AccessStateStore
from ..services.balance_oracle import validate_address
from ..services.logging_service import LogLevel
from ..services.reconciliation_service import ReconciliationService
from ..services.tier_resolver import describe_tiers, parse_tier_list
from ..utils.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class GateCog(commands.Cog):
    """Token gate configuration and wallet verification (slash-only)"""

    def __init__(self, bot, store: AccessStateStore, reconciliation: ReconciliationService):
        self.bot = bot
        self.store = store
        self.reconciliation = reconciliation

    @property
    def embed_logger(self):
        """Get embed logger from bot"""
        return getattr(self.bot, "embed_logger", None)

    gate = app_commands.Group(name="gate", description="Token-gated access", guild_only=True)

    async def _active_group(self, interaction: Interaction) -> GatedChat | None:
        group = await self.store.get_group(interaction.guild_id)
        if not group or not group.is_active:
            await interaction.followup.send(
                "❌ This server is not token-gated yet. Ask an admin to run `/gate setup` first.",
                ephemeral=True,
            )
            return None
        return group

    # --------------- Admin ---------------

    @gate.command(name="setup", description="Gate this server on a token (tiers like '100000:Whale, 10000:Holder')")
    @app_commands.describe(token_mint="Mint address of the gated token", tiers="Comma-separated <amount>:<status>")
    @app_commands.checks.has_permissions(administrator=True)
    async def setup(self, interaction: Interaction, token_mint: str, tiers: str):
        await interaction.response.defer(ephemeral=True)
        try:
            validate_address(token_mint.strip(), "token mint address")
            tier_list = parse_tier_list(tiers)
        except ValidationError as e:
            return await interaction.followup.send(f"❌ {e}", ephemeral=True)

        try:
            await self.store.upsert_group(interaction.guild_id, interaction.user.id, token_mint.strip())
            await self.store.replace_tiers(interaction.guild_id, tier_list)
        except PersistenceError as e:
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Gate Commands",
                    error=e,
                    context=f"/gate setup failed - executed by {interaction.user.id}",
                )
            return await interaction.followup.send("❌ Could not save the configuration. Please try again.", ephemeral=True)

        if self.embed_logger:
            await self.embed_logger.log_custom(
                service="Gate Commands",
                title="Token Gate Configured",
                description=f"<@{interaction.user.id}> configured the token gate",
                level=LogLevel.SUCCESS,
                fields={
                    "Guild": str(interaction.guild_id),
                    "Token Mint": f"`{token_mint.strip()}`",
                    "Tiers": str(len(tier_list)),
                },
            )

        await interaction.followup.send(
            "✅ **Token gate configured!**\n\n"
            f"Token: `{token_mint.strip()}`\n"
            f"{describe_tiers(tier_list)}\n\n"
            "Members can now use `/gate linkwallet` to verify their holdings.",
            ephemeral=True,
        )

    @gate.command(name="disable", description="Stop gating this server (history is kept)")
    @app_commands.checks.has_permissions(administrator=True)
    async def disable(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        if await self.store.deactivate_group(interaction.guild_id):
            logger.info(f"Token gate disabled in guild {interaction.guild_id} by {interaction.user.id}")
            await interaction.followup.send("✅ Token gate disabled. Run `/gate setup` to enable it again.", ephemeral=True)
        else:
            await interaction.followup.send("ℹ️ This server is not token-gated.", ephemeral=True)

    @gate.command(name="history", description="Show recent verification results for a member")
    @app_commands.checks.has_permissions(administrator=True)
    @app_commands.describe(member="Member to inspect (defaults to you)")
    async def history(self, interaction: Interaction, member: discord.Member | None = None):
        await interaction.response.defer(ephemeral=True)
        user_id = member.id if member else interaction.user.id
        entries = await self.store.recent_verification_log(user_id, interaction.guild_id, limit=10)
        if not entries:
            return await interaction.followup.send("No verification history for that member.", ephemeral=True)

        lines = [
            f"`{e.created_at:%Y-%m-%d %H:%M}` {e.action} · {e.status or '-'} ({e.balance:,.2f})"
            if e.created_at else f"{e.action} · {e.status or '-'} ({e.balance:,.2f})"
            for e in entries
        ]
        await interaction.followup.send(f"**History for <@{user_id}>**\n" + "\n".join(lines), ephemeral=True)

    # --------------- Members ---------------

    @gate.command(name="tiers", description="Show the token requirements of this server")
    async def tiers(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        group = await self._active_group(interaction)
        if not group:
            return
        tiers = await self.store.list_tiers(group.chat_id)
        await interaction.followup.send(
            f"**Token:** `{group.token_mint}`\n{describe_tiers(tiers)}", ephemeral=True
        )

    @gate.command(name="linkwallet", description="Link your Solana wallet and verify your holdings")
    @app_commands.describe(address="Your Solana wallet address")
    async def linkwallet(self, interaction: Interaction, address: str):
        await interaction.response.defer(ephemeral=True)
        group = await self._active_group(interaction)
        if not group:
            return

        try:
            outcome = await self.reconciliation.link_wallet(group, interaction.user.id, address.strip())
        except ValidationError as e:
            return await interaction.followup.send(f"❌ {e}", ephemeral=True)
        except PersistenceError:
            return await interaction.followup.send(
                "❌ An error occurred while verifying your wallet. Please try again later.", ephemeral=True
            )

        wallet = f"{address.strip()[:8]}...{address.strip()[-8:]}"
        if not outcome.ok:
            await interaction.followup.send(
                f"❌ Failed to verify balance: {outcome.error}\n\nPlease try again later.", ephemeral=True
            )
        elif outcome.action == ACTION_ACCESS_GRANTED:
            await interaction.followup.send(
                "✅ **Wallet Linked Successfully!**\n\n"
                f"Wallet: `{wallet}`\n"
                f"Balance: {outcome.balance:,.2f} tokens\n"
                f"Status: **{outcome.status}** 🎉",
                ephemeral=True,
            )
        else:
            await interaction.followup.send(
                "❌ **Insufficient Balance**\n\n"
                f"Wallet: `{wallet}`\n"
                f"Balance: {outcome.balance:,.2f} tokens\n\n"
                "You need more tokens to access this server. Use `/gate tiers` to see the requirements.",
                ephemeral=True,
            )

    @gate.command(name="check", description="Re-check your token balance now")
    async def check(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        group = await self._active_group(interaction)
        if not group:
            return

        membership = await self.store.get_membership(interaction.user.id, group.chat_id)
        if not membership:
            return await interaction.followup.send(
                "❌ You haven't linked a wallet yet.\n\nUse: `/gate linkwallet <solana_address>`", ephemeral=True
            )

        try:
            outcome = await self.reconciliation.check_member(group, membership)
        except ValidationError as e:
            return await interaction.followup.send(f"❌ {e}", ephemeral=True)
        except PersistenceError:
            return await interaction.followup.send("❌ An error occurred. Please try again later.", ephemeral=True)

        if not outcome.ok:
            await interaction.followup.send(
                f"❌ Failed to check balance: {outcome.error}\n\nPlease try again later.", ephemeral=True
            )
        elif outcome.revoked:
            await interaction.followup.send(
                "⚠️ **Balance Check**\n\n"
                f"Balance: {outcome.balance:,.2f} tokens\n"
                "Status: **Insufficient** ❌\n\n"
                "You no longer meet the requirements for this server.",
                ephemeral=True,
            )
        else:
            await interaction.followup.send(
                "✅ **Balance Check**\n\n"
                f"Balance: {outcome.balance:,.2f} tokens\n"
                f"Status: **{outcome.status}**",
                ephemeral=True,
            )

    @gate.command(name="status", description="Show your linked wallet and last known status")
    async def status(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        group = await self._active_group(interaction)
        if not group:
            return

        membership = await self.store.get_membership(interaction.user.id, group.chat_id)
        if not membership:
            return await interaction.followup.send(
                "❌ You haven't linked a wallet yet.\n\nUse: `/gate linkwallet <solana_address>`", ephemeral=True
            )

        last_checked = membership.last_checked.strftime("%Y-%m-%d %H:%M UTC") if membership.last_checked else "Never"
        await interaction.followup.send(
            "📊 **Your Status**\n\n"
            f"Wallet: `{membership.short_wallet}`\n"
            f"Balance: {membership.balance:,.2f} tokens\n"
            f"Status: **{membership.status or 'Not checked yet'}**\n"
            f"Last Checked: {last_checked}\n\n"
            "Use `/gate check` to refresh your balance.",
            ephemeral=True,
        )

    # ---------- events ----------

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        if member.bot:
            return
        try:
            group = await self.store.get_group(member.guild.id)
        except PersistenceError as e:
            logger.warning(f"Could not load gate config for guild {member.guild.id} on join: {e}")
            return
        if not group or not group.is_active:
            return

        text = (
            f"👋 Welcome {member.display_name}!\n\n"
            "This server requires token holdings to participate.\n\n"
            "Use `/gate linkwallet <solana_address>` to verify your holdings and gain access.\n"
            "Use `/gate tiers` to see the requirements."
        )
        # system channel first, DM when the guild has none
        channel = member.guild.system_channel
        try:
            if channel:
                await channel.send(
                    content=f"<@{member.id}> {text}",
                    allowed_mentions=discord.AllowedMentions(users=True, roles=False, everyone=False),
                )
            else:
                await member.send(text)
        except discord.HTTPException as e:
            logger.warning(f"Welcome message for {member.id} in guild {member.guild.id} failed: {e}")

    async def cog_app_command_error(self, interaction: Interaction, error: app_commands.AppCommandError):
        if isinstance(error, app_commands.MissingPermissions):
            message = "❌ You don't have permission to use this command."
        else:
            logger.error(f"Gate command error: {error}")
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Gate Commands",
                    error=error,
                    context=f"User: {interaction.user.id}, Command: {getattr(interaction.command, 'name', 'unknown')}",
                )
            message = "❌ Command failed unexpectedly."

        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)
