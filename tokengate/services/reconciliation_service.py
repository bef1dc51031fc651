# tokengate/services/reconciliation_service.py
"""
Periodic re-verification of every linked wallet in every gated guild.

One run walks groups and members strictly in sequence (the balance oracle's
rate limiter assumes a single ordered stream of calls). Failures are isolated
per member and per group; nothing is retried, the next run starts from scratch.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..database.models import GatedChat, Membership, STATUS_REJECTED, STATUS_REMOVED, Tier
from ..database.models.verification_log import (
    ACTION_ACCESS_GRANTED,
    ACTION_ACCESS_REVOKED,
    ACTION_INSUFFICIENT_BALANCE,
    ACTION_STATUS_UPDATED,
    ACTION_VERIFIED,
    STATUS_ERROR,
    VerificationLogEntry,
    check_failed_action,
)
from ..utils.errors import ValidationError
from .access_store import AccessStateStore
from .balance_oracle import BalanceOracle, validate_address
from .logging_service import LogLevel
from .tier_resolver import select_tier

logger = logging.getLogger(__name__)


@dataclass
class MembershipOutcome:
    """What one verification did to one membership"""
    user_id: int
    chat_id: int
    ok: bool
    balance: float = 0.0
    status: Optional[str] = None
    action: Optional[str] = None
    changed: bool = False
    error: Optional[str] = None

    @property
    def revoked(self) -> bool:
        return self.action == ACTION_ACCESS_REVOKED


@dataclass
class RunSummary:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    groups: int = 0
    groups_skipped: int = 0
    members_checked: int = 0
    status_updates: int = 0
    revoked: int = 0
    failures: int = 0
    duration_seconds: float = 0.0

    def as_fields(self) -> dict:
        return {
            "Groups": str(self.groups),
            "Skipped (no tiers)": str(self.groups_skipped),
            "Members Checked": str(self.members_checked),
            "Status Updates": str(self.status_updates),
            "Revoked": str(self.revoked),
            "Failures": str(self.failures),
            "Duration": f"{self.duration_seconds:.1f}s",
        }


def status_changed_message(status: str, balance: float) -> str:
    return (
        "🎉 Your status in the token-gated server has been updated!\n\n"
        f"New Status: **{status}**\n"
        f"Balance: {balance:,.2f} tokens"
    )


def access_revoked_message(balance: float) -> str:
    return (
        "⚠️ Your access to the token-gated server has been removed.\n\n"
        f"Reason: Insufficient token balance ({balance:,.2f} tokens)\n\n"
        "To regain access, acquire more tokens, rejoin and use `/gate linkwallet` to verify again."
    )


class ReconciliationService:
    def __init__(
        self,
        store: AccessStateStore,
        oracle: BalanceOracle,
        notifier=None,
        enforcer=None,
        *,
        notify_members: bool = True,
        embed_logger=None,
    ):
        self.store = store
        self.oracle = oracle
        self.notifier = notifier
        self.enforcer = enforcer
        self.notify_members = notify_members
        self.embed_logger = embed_logger
        self._running = False
        self.last_summary: Optional[RunSummary] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # --------------- Scheduled runs ---------------

    async def run_reconciliation(self) -> Optional[RunSummary]:
        """
        Run one sweep. Returns None without doing anything if a sweep is already
        in flight; the trigger is dropped, not queued.
        """
        # check-and-set with no await in between
        if self._running:
            logger.info("Reconciliation already in progress, skipping trigger")
            return None
        self._running = True

        try:
            summary = await self._run()
        finally:
            self._running = False

        self.last_summary = summary
        return summary

    async def _run(self) -> RunSummary:
        summary = RunSummary()
        started = time.monotonic()
        logger.info(f"Starting reconciliation run at {summary.started_at.isoformat()}")

        groups = await self.store.list_active_groups()
        logger.info(f"Found {len(groups)} active groups to verify")

        for group in groups:
            try:
                await self._reconcile_group(group, summary)
            except Exception as e:
                summary.failures += 1
                logger.exception(f"Error verifying group {group.chat_id}: {e}")

        summary.duration_seconds = time.monotonic() - started
        logger.info(
            f"Reconciliation run completed in {summary.duration_seconds:.1f}s: "
            f"{summary.members_checked} checked, {summary.status_updates} updated, "
            f"{summary.revoked} revoked, {summary.failures} failures"
        )

        if self.embed_logger:
            await self.embed_logger.log_custom(
                service="Reconciliation",
                title="Run Completed",
                description="Scheduled token balance verification finished",
                level=LogLevel.WARNING if summary.failures else LogLevel.SUCCESS,
                fields=summary.as_fields(),
            )
        return summary

    async def _reconcile_group(self, group: GatedChat, summary: RunSummary) -> None:
        tiers = await self.store.list_tiers(group.chat_id)
        if not tiers:
            logger.info(f"No tiers configured for group {group.chat_id}, skipping")
            summary.groups_skipped += 1
            return

        memberships = await self.store.list_memberships(group.chat_id)
        summary.groups += 1
        logger.info(f"Verifying {len(memberships)} members in group {group.chat_id} (token {group.token_mint})")

        for membership in memberships:
            try:
                outcome = await self.verify_membership(group, membership, tiers)
            except Exception as e:
                summary.failures += 1
                logger.exception(f"Error verifying user {membership.user_id} in group {group.chat_id}: {e}")
                continue

            summary.members_checked += 1
            if not outcome.ok:
                summary.failures += 1
            elif outcome.revoked:
                summary.revoked += 1
            elif outcome.changed:
                summary.status_updates += 1

    # --------------- Per-membership body ---------------

    async def verify_membership(self, group: GatedChat, membership: Membership, tiers: List[Tier]) -> MembershipOutcome:
        """
        Re-evaluate one membership: resolve balance, pick the tier, persist, then
        enforce / notify. Store errors propagate to the caller.
        """
        user_id, chat_id = membership.user_id, group.chat_id
        result = await self.oracle.resolve(membership.wallet_address, group.token_mint)

        if not result.ok:
            logger.warning(f"Failed to get balance for user {user_id} in group {chat_id}: {result.error}")
            action = check_failed_action(result.error)
            await self._audit(membership, chat_id, 0.0, STATUS_ERROR, action)
            return MembershipOutcome(user_id, chat_id, ok=False, action=action, error=result.error)

        balance = result.balance
        tier = select_tier(balance, tiers)

        if tier:
            new_status = tier.status_name
            changed = membership.status != new_status
            action = ACTION_STATUS_UPDATED if changed else ACTION_VERIFIED

            await self.store.upsert_membership_status(user_id, chat_id, new_status, balance)
            await self._audit(membership, chat_id, balance, new_status, action)

            if changed:
                logger.info(f"User {user_id} in group {chat_id} status changed {membership.status!r} -> {new_status!r}")
                await self._notify(user_id, status_changed_message(new_status, balance))
            return MembershipOutcome(user_id, chat_id, True, balance, new_status, action, changed)

        logger.info(f"User {user_id} no longer meets requirements in group {chat_id} (balance {balance}), removing")
        await self.store.upsert_membership_status(user_id, chat_id, STATUS_REMOVED, balance)
        await self._audit(membership, chat_id, balance, STATUS_REMOVED, ACTION_ACCESS_REVOKED)

        await self._enforce(chat_id, user_id)
        await self._notify(user_id, access_revoked_message(balance))
        return MembershipOutcome(
            user_id, chat_id, True, balance, STATUS_REMOVED, ACTION_ACCESS_REVOKED,
            changed=membership.status != STATUS_REMOVED,
        )

    async def _audit(self, membership: Membership, chat_id: int, balance: float, status: str, action: str) -> None:
        await self.store.append_verification_log(
            VerificationLogEntry(
                user_id=membership.user_id,
                chat_id=chat_id,
                wallet_address=membership.wallet_address,
                balance=balance,
                status=status,
                action=action,
            )
        )

    async def _enforce(self, chat_id: int, user_id: int) -> None:
        if not self.enforcer:
            return
        try:
            await self.enforcer.reset_membership(chat_id, user_id)
        except Exception as e:
            # EnforcementError or a raw client error; never escalated
            logger.error(f"Access reset failed for {user_id} in group {chat_id}: {e}")
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Reconciliation",
                    error=e,
                    context=f"Access reset failed for <@{user_id}> in guild {chat_id}",
                )

    async def _notify(self, user_id: int, text: str) -> None:
        if not self.notifier or not self.notify_members:
            return
        try:
            await self.notifier.notify(user_id, text)
        except Exception as e:
            # DMs closed, user gone, ... never escalated
            logger.warning(f"Failed to notify user {user_id}: {e}")

    # --------------- On-demand paths (command layer) ---------------

    async def check_member(self, group: GatedChat, membership: Membership) -> MembershipOutcome:
        """Single-user re-check; same body as a scheduled run, not gated by the in-flight flag"""
        tiers = await self.store.list_tiers(group.chat_id)
        if not tiers:
            raise ValidationError("No tiers configured for this server")
        return await self.verify_membership(group, membership, tiers)

    async def link_wallet(self, group: GatedChat, user_id: int, wallet_address: str) -> MembershipOutcome:
        """
        Verify a newly claimed wallet. Qualifying wallets are linked and get their
        tier; others are audited as rejected and not linked.
        """
        validate_address(wallet_address, "wallet address")
        tiers = await self.store.list_tiers(group.chat_id)
        if not tiers:
            raise ValidationError("No tiers configured for this server")

        result = await self.oracle.resolve(wallet_address, group.token_mint)
        if not result.ok:
            return MembershipOutcome(user_id, group.chat_id, ok=False, error=result.error)

        tier = select_tier(result.balance, tiers)
        membership = Membership(user_id=user_id, chat_id=group.chat_id, wallet_address=wallet_address)

        if tier is None:
            await self._audit(membership, group.chat_id, result.balance, STATUS_REJECTED, ACTION_INSUFFICIENT_BALANCE)
            return MembershipOutcome(
                user_id, group.chat_id, True, result.balance, STATUS_REJECTED, ACTION_INSUFFICIENT_BALANCE
            )

        await self.store.link_wallet(user_id, group.chat_id, wallet_address)
        await self.store.upsert_membership_status(user_id, group.chat_id, tier.status_name, result.balance)
        await self._audit(membership, group.chat_id, result.balance, tier.status_name, ACTION_ACCESS_GRANTED)
        return MembershipOutcome(
            user_id, group.chat_id, True, result.balance, tier.status_name, ACTION_ACCESS_GRANTED, changed=True
        )
