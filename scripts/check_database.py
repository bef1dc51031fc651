#!/usr/bin/env python3
"""
scripts/check_database.py
Check database connection, migration status and token gate row counts
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

import asyncpg

from tokengate.database.database_service import database_service
from tokengate.utils.config import Config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

GATE_TABLES = ("gated_chats", "tiers", "memberships", "verification_log")


async def check_database() -> bool:
    config = Config()

    print("Token Gate Bot - Database Health Check")
    print("=" * 50)
    print(f"Host: {config.db_host}")
    print(f"Port: {config.db_port}")
    print(f"Database: {config.db_name}")
    print(f"User: {config.db_user}")
    print()

    try:
        pool = await database_service.initialize()
        print("✅ Database service initialized successfully")

        if not await database_service.health_check():
            print("❌ Pool health check failed")
            return False

        async with pool.acquire() as conn:
            version = await conn.fetchval("SELECT version()")
            print(f"✅ PostgreSQL Version: {version.split(',')[0]}")

            try:
                alembic_version = await conn.fetchval("SELECT version_num FROM alembic_version LIMIT 1")
                print(f"✅ Alembic version: {alembic_version}")
            except asyncpg.UndefinedTableError:
                print("⚠️ No Alembic version table found (migrations not run)")

            for table in GATE_TABLES:
                try:
                    count = await conn.fetchval(f"SELECT COUNT(*) FROM {table}")
                    print(f"✅ {table}: {count} rows")
                except asyncpg.PostgresError as e:
                    print(f"⚠️ Could not check {table}: {e}")

            active = await conn.fetchval("SELECT COUNT(*) FROM gated_chats WHERE is_active = TRUE")
            print(f"✅ Active gated guilds: {active}")

        print("\n✅ Database health check passed!")
        return True

    except Exception as e:
        print(f"❌ Database health check failed: {e}")
        return False
    finally:
        await database_service.close()


async def main():
    success = await check_database()
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
