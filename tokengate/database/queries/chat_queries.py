"""
tokengate/database/queries/chat_queries.py
Gated chat queries for PostgreSQL
"""

import asyncpg
from typing import List, Optional
from ..models.gated_chat import GatedChat


class ChatQueries:
    def __init__(self, db_pool: asyncpg.Pool):
        self.pool = db_pool

    async def get_chat(self, chat_id: int) -> Optional[GatedChat]:
        query = """
            SELECT * FROM gated_chats WHERE chat_id = $1
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, chat_id)
            return GatedChat.from_row(dict(row)) if row else None

    async def upsert_chat(self, chat_id: int, admin_id: int, token_mint: str) -> None:
        """Create the chat or reactivate it with a new admin / mint"""
        query = """
            INSERT INTO gated_chats (chat_id, admin_id, token_mint, is_active, created_at, updated_at)
            VALUES ($1, $2, $3, TRUE, NOW(), NOW())
            ON CONFLICT (chat_id) DO UPDATE SET
                admin_id = EXCLUDED.admin_id,
                token_mint = EXCLUDED.token_mint,
                is_active = TRUE,
                updated_at = NOW()
        """
        async with self.pool.acquire() as conn:
            await conn.execute(query, chat_id, admin_id, token_mint)

    async def deactivate_chat(self, chat_id: int) -> bool:
        query = """
            UPDATE gated_chats
            SET is_active = FALSE, updated_at = NOW()
            WHERE chat_id = $1
        """
        async with self.pool.acquire() as conn:
            status = await conn.execute(query, chat_id)
            return status.endswith(" 1")

    async def get_active_chats(self) -> List[GatedChat]:
        query = """
            SELECT * FROM gated_chats WHERE is_active = TRUE
            ORDER BY chat_id
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)
            return [GatedChat.from_row(dict(row)) for row in rows]
