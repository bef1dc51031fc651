# tokengate/database/queries/verification_log_queries.py
"""
Queries for verification_log (insert-only from the bot's point of view)
"""
import asyncpg
from decimal import Decimal
from ..models.verification_log import VerificationLogEntry


class VerificationLogQueries:
    def __init__(self, db_pool: asyncpg.Pool):
        self.pool = db_pool

    async def insert(self, entry: VerificationLogEntry) -> int:
        sql = """
        INSERT INTO verification_log (
            user_id, chat_id, wallet_address, balance, status, action, created_at
        ) VALUES ($1,$2,$3,$4,$5,$6,NOW())
        RETURNING id
        """
        async with self.pool.acquire() as conn:
            new_id = await conn.fetchval(
                sql,
                entry.user_id,
                entry.chat_id,
                entry.wallet_address,
                Decimal(str(entry.balance)),
                entry.status,
                entry.action,
            )
            return int(new_id)

    async def recent_for_user(self, user_id: int, chat_id: int, limit: int = 10) -> list[VerificationLogEntry]:
        sql = """
        SELECT * FROM verification_log
        WHERE user_id = $1 AND chat_id = $2
        ORDER BY created_at DESC, id DESC
        LIMIT $3
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(sql, user_id, chat_id, limit)
            return [VerificationLogEntry.from_row(dict(r)) for r in rows]
