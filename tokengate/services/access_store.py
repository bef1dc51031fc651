# tokengate/services/access_store.py
from __future__ import annotations

import logging
from typing import Awaitable, List, Optional, Sequence, TypeVar

import asyncpg

from ..database.models import GatedChat, Membership, Tier, VerificationLogEntry
from ..database.queries import ChatQueries, MembershipQueries, TierQueries, VerificationLogQueries
from ..utils.errors import PersistenceError
from .tier_resolver import check_tier_set

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors a pooled asyncpg call can surface when the database misbehaves
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class AccessStateStore:
    """
    Persistence used by the reconciliation service and the command layer.

    Each call is independently atomic; nothing here spans calls.
    Any database failure is raised as PersistenceError.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.chats = ChatQueries(db_pool)
        self.tiers = TierQueries(db_pool)
        self.memberships = MembershipQueries(db_pool)
        self.verification_log = VerificationLogQueries(db_pool)

    async def _run(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except DB_ERRORS as e:
            logger.error(f"Store operation '{operation}' failed: {e}")
            raise PersistenceError(f"{operation} failed: {e}")

    # --------------- Groups ---------------

    async def list_active_groups(self) -> List[GatedChat]:
        return await self._run("list_active_groups", self.chats.get_active_chats())

    async def get_group(self, chat_id: int) -> Optional[GatedChat]:
        return await self._run("get_group", self.chats.get_chat(chat_id))

    async def upsert_group(self, chat_id: int, admin_id: int, token_mint: str) -> None:
        await self._run("upsert_group", self.chats.upsert_chat(chat_id, admin_id, token_mint))

    async def deactivate_group(self, chat_id: int) -> bool:
        return await self._run("deactivate_group", self.chats.deactivate_chat(chat_id))

    # --------------- Tiers ---------------

    async def list_tiers(self, chat_id: int) -> List[Tier]:
        return await self._run("list_tiers", self.tiers.get_tiers(chat_id))

    async def replace_tiers(self, chat_id: int, tiers: Sequence[Tier]) -> None:
        check_tier_set(tiers)
        await self._run("replace_tiers", self.tiers.replace_tiers(chat_id, tiers))

    # --------------- Memberships ---------------

    async def list_memberships(self, chat_id: int) -> List[Membership]:
        return await self._run("list_memberships", self.memberships.get_memberships_by_chat(chat_id))

    async def get_membership(self, user_id: int, chat_id: int) -> Optional[Membership]:
        return await self._run("get_membership", self.memberships.get_membership(user_id, chat_id))

    async def link_wallet(self, user_id: int, chat_id: int, wallet_address: str) -> None:
        await self._run("link_wallet", self.memberships.link_wallet(user_id, chat_id, wallet_address))

    async def upsert_membership_status(self, user_id: int, chat_id: int, status: str, balance: float) -> None:
        await self._run(
            "upsert_membership_status",
            self.memberships.update_status(user_id, chat_id, status, balance),
        )

    # --------------- Audit log ---------------

    async def append_verification_log(self, entry: VerificationLogEntry) -> int:
        return await self._run("append_verification_log", self.verification_log.insert(entry))

    async def recent_verification_log(self, user_id: int, chat_id: int, limit: int = 10) -> List[VerificationLogEntry]:
        return await self._run(
            "recent_verification_log",
            self.verification_log.recent_for_user(user_id, chat_id, limit),
        )
