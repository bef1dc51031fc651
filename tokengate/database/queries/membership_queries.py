"""
tokengate/database/queries/membership_queries.py
Membership (linked wallet) queries for PostgreSQL
"""

import asyncpg
from decimal import Decimal
from typing import List, Optional
from ..models.membership import Membership


class MembershipQueries:
    def __init__(self, db_pool: asyncpg.Pool):
        self.pool = db_pool

    async def get_membership(self, user_id: int, chat_id: int) -> Optional[Membership]:
        query = """
            SELECT * FROM memberships WHERE user_id = $1 AND chat_id = $2
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, chat_id)
            return Membership.from_row(dict(row)) if row else None

    async def get_memberships_by_chat(self, chat_id: int) -> List[Membership]:
        query = """
            SELECT * FROM memberships WHERE chat_id = $1
            ORDER BY id
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, chat_id)
            return [Membership.from_row(dict(row)) for row in rows]

    async def link_wallet(self, user_id: int, chat_id: int, wallet_address: str) -> None:
        """Insert or overwrite the wallet claimed by a user in a chat"""
        query = """
            INSERT INTO memberships (user_id, chat_id, wallet_address, created_at, updated_at)
            VALUES ($1, $2, $3, NOW(), NOW())
            ON CONFLICT (user_id, chat_id) DO UPDATE SET
                wallet_address = EXCLUDED.wallet_address,
                updated_at = NOW()
        """
        async with self.pool.acquire() as conn:
            await conn.execute(query, user_id, chat_id, wallet_address)

    async def update_status(self, user_id: int, chat_id: int, status: str, balance: float) -> None:
        """Last-write-wins update of the computed status"""
        query = """
            UPDATE memberships
            SET status = $3, balance = $4, last_checked = NOW(), updated_at = NOW()
            WHERE user_id = $1 AND chat_id = $2
        """
        async with self.pool.acquire() as conn:
            await conn.execute(query, user_id, chat_id, status, Decimal(str(balance)))
