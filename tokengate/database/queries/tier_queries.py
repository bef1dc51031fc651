"""
tokengate/database/queries/tier_queries.py
Tier queries for PostgreSQL
"""

import asyncpg
from typing import List, Sequence
from ..models.tier import Tier


class TierQueries:
    def __init__(self, db_pool: asyncpg.Pool):
        self.pool = db_pool

    async def get_tiers(self, chat_id: int) -> List[Tier]:
        """Tiers of a chat, highest threshold first"""
        query = """
            SELECT * FROM tiers WHERE chat_id = $1
            ORDER BY min_amount DESC
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, chat_id)
            return [Tier.from_row(dict(row)) for row in rows]

    async def replace_tiers(self, chat_id: int, tiers: Sequence[Tier]) -> None:
        """Delete every tier of the chat and insert the new set in one transaction"""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM tiers WHERE chat_id = $1", chat_id)
                await conn.executemany(
                    """
                    INSERT INTO tiers (chat_id, min_amount, status_name, role_id, created_at)
                    VALUES ($1, $2, $3, $4, NOW())
                    """,
                    [(chat_id, t.min_amount, t.status_name, t.role_id) for t in tiers],
                )
