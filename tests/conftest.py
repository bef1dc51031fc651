# tests/conftest.py
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from tokengate.database.models import GatedChat, Membership, Tier, VerificationLogEntry
from tokengate.services.balance_oracle import BalanceResult
from tokengate.utils.errors import PersistenceError

MINT = "So11111111111111111111111111111111111111112"
OTHER_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WALLET_A = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
WALLET_B = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_C = "DRpbCBMxVnDK7maPM5tGv6MvB3v1sRMC86PZ8okm21hy"

GUILD_ID = 111
OTHER_GUILD_ID = 222


class FakeStore:
    """In-memory stand-in for AccessStateStore"""

    def __init__(self):
        self.groups: Dict[int, GatedChat] = {}
        self.tiers: Dict[int, List[Tier]] = {}
        self.memberships: Dict[Tuple[int, int], Membership] = {}
        self.log: List[VerificationLogEntry] = []
        self.linked: List[Tuple[int, int, str]] = []
        # method name -> exception, or (method name, key) -> exception
        self.failures: Dict = {}

    def _maybe_fail(self, method: str, key=None):
        error = self.failures.get((method, key)) or self.failures.get(method)
        if error:
            raise error

    def add_group(self, chat_id: int, tiers: List[Tier], mint: str = MINT, active: bool = True) -> GatedChat:
        group = GatedChat(chat_id=chat_id, admin_id=1, token_mint=mint, is_active=active)
        self.groups[chat_id] = group
        self.tiers[chat_id] = list(tiers)
        return group

    def add_member(self, user_id: int, chat_id: int, wallet: str, status: Optional[str] = None) -> Membership:
        membership = Membership(user_id=user_id, chat_id=chat_id, wallet_address=wallet, status=status)
        self.memberships[(user_id, chat_id)] = membership
        return membership

    def status_of(self, user_id: int, chat_id: int) -> Optional[str]:
        return self.memberships[(user_id, chat_id)].status

    def actions_for(self, user_id: int) -> List[str]:
        return [e.action for e in self.log if e.user_id == user_id]

    async def list_active_groups(self) -> List[GatedChat]:
        self._maybe_fail("list_active_groups")
        return [g for g in self.groups.values() if g.is_active]

    async def get_group(self, chat_id: int) -> Optional[GatedChat]:
        self._maybe_fail("get_group", chat_id)
        return self.groups.get(chat_id)

    async def upsert_group(self, chat_id: int, admin_id: int, token_mint: str) -> None:
        self._maybe_fail("upsert_group", chat_id)
        self.groups[chat_id] = GatedChat(chat_id=chat_id, admin_id=admin_id, token_mint=token_mint, is_active=True)

    async def deactivate_group(self, chat_id: int) -> bool:
        group = self.groups.get(chat_id)
        if not group or not group.is_active:
            return False
        group.is_active = False
        return True

    async def replace_tiers(self, chat_id: int, tiers: List[Tier]) -> None:
        self._maybe_fail("replace_tiers", chat_id)
        self.tiers[chat_id] = list(tiers)

    async def list_tiers(self, chat_id: int) -> List[Tier]:
        self._maybe_fail("list_tiers", chat_id)
        return list(self.tiers.get(chat_id, []))

    async def list_memberships(self, chat_id: int) -> List[Membership]:
        self._maybe_fail("list_memberships", chat_id)
        # snapshot copies, the service must not rely on shared objects
        return [
            Membership(m.user_id, m.chat_id, m.wallet_address, m.status, m.balance, m.last_checked)
            for (_, cid), m in self.memberships.items()
            if cid == chat_id
        ]

    async def get_membership(self, user_id: int, chat_id: int) -> Optional[Membership]:
        return self.memberships.get((user_id, chat_id))

    async def link_wallet(self, user_id: int, chat_id: int, wallet_address: str) -> None:
        self._maybe_fail("link_wallet", user_id)
        self.linked.append((user_id, chat_id, wallet_address))
        existing = self.memberships.get((user_id, chat_id))
        if existing:
            existing.wallet_address = wallet_address
        else:
            self.add_member(user_id, chat_id, wallet_address)

    async def upsert_membership_status(self, user_id: int, chat_id: int, status: str, balance: float) -> None:
        self._maybe_fail("upsert_membership_status", user_id)
        membership = self.memberships[(user_id, chat_id)]
        membership.status = status
        membership.balance = balance

    async def append_verification_log(self, entry: VerificationLogEntry) -> int:
        self._maybe_fail("append_verification_log", entry.user_id)
        self.log.append(entry)
        return len(self.log)

    async def recent_verification_log(self, user_id: int, chat_id: int, limit: int = 10) -> List[VerificationLogEntry]:
        entries = [e for e in self.log if e.user_id == user_id and e.chat_id == chat_id]
        return list(reversed(entries))[:limit]


class FakeOracle:
    """Returns canned balances per wallet and records every call"""

    def __init__(self, balances: Optional[Dict[str, object]] = None):
        self.balances = balances or {}
        self.calls: List[Tuple[str, str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def resolve(self, wallet_address: str, token_mint: str) -> BalanceResult:
        self.calls.append((wallet_address, token_mint))
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()

        value = self.balances.get(wallet_address, 0.0)
        if isinstance(value, str):
            return BalanceResult(0.0, False, value, wallet_address, token_mint)
        return BalanceResult(float(value), True, None, wallet_address, token_mint)


@pytest.fixture
def tiers() -> List[Tier]:
    return [Tier(min_amount=10_000, status_name="Holder"), Tier(min_amount=100_000, status_name="Whale")]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def enforcer() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def db_down() -> PersistenceError:
    return PersistenceError("upsert_membership_status failed: connection reset")
