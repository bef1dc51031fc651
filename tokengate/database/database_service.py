"""
tokengate/database/database_service.py
Database initialization and migration service
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import asyncpg
from alembic import command
from alembic.config import Config as AlembicConfig

from ..services.logging_service import LogLevel
from ..utils.config import Config

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).parent.parent.parent / "alembic.ini"
MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class DatabaseService:
    """Handles database initialization, migrations, and connection management"""

    def __init__(self, config: Config):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None
        self.embed_logger = None

        self.db_host = config.db_host
        self.db_port = config.db_port
        self.db_name = config.db_name
        self.db_user = config.db_user
        self.db_password = config.db_password

    def set_logger(self, embed_logger):
        """Set the embed logger for database operations"""
        self.embed_logger = embed_logger

    async def initialize(self) -> asyncpg.Pool:
        """Wait for Postgres, apply migrations and create the connection pool"""
        start_time = datetime.now(timezone.utc)

        logger.info("Initializing database service...")

        try:
            await self._wait_for_database()
            if self.config.run_migrations:
                await self._run_migrations()
            else:
                logger.warning("RUN_MIGRATIONS disabled - assuming schema is up to date")
            self.pool = await self._create_connection_pool()

            init_time = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(f"Database service initialized successfully in {init_time:.2f}s")

            if self.embed_logger:
                await self.embed_logger.log_custom(
                    service="Database Service",
                    title="Database Initialization Complete",
                    description="Connection pool ready",
                    level=LogLevel.SUCCESS,
                    fields={
                        "Initialization Time": f"{init_time:.2f}s",
                        "Database": f"{self.db_name}@{self.db_host}:{self.db_port}",
                        "Migrations": "applied" if self.config.run_migrations else "skipped",
                    },
                )
            return self.pool

        except Exception as e:
            init_time = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.error(f"Failed to initialize database after {init_time:.2f}s: {e}")
            if self.embed_logger:
                await self.embed_logger.log_error(
                    service="Database Service",
                    error=e,
                    context=f"Database initialization failed after {init_time:.2f}s",
                )
            raise

    async def _wait_for_database(self, attempts: int = 30):
        """Poll until Postgres accepts connections"""
        logger.info(f"Checking if database '{self.db_name}' is reachable...")

        for attempt in range(attempts):
            try:
                conn = await asyncpg.connect(
                    host=self.db_host,
                    port=self.db_port,
                    user=self.db_user,
                    password=self.db_password,
                    database=self.db_name,
                )
                version = await conn.fetchval("SELECT version()")
                await conn.close()
                logger.info(f"Database '{self.db_name}' is ready - PostgreSQL: {version[:50]}...")
                return
            except (OSError, asyncpg.PostgresError) as e:
                if attempt < attempts - 1:
                    logger.info(f"Database not ready (attempt {attempt + 1}/{attempts}), waiting... Error: {e}")
                    await asyncio.sleep(1)
                else:
                    logger.error(f"Failed to connect to database after {attempts} attempts: {e}")
                    raise

    async def _run_migrations(self):
        """Run Alembic migrations to head"""
        logger.info("Applying database migrations...")

        alembic_cfg = AlembicConfig(str(ALEMBIC_INI))
        alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        alembic_cfg.set_main_option("sqlalchemy.url", self.config.dsn.replace("%", "%%"))
        alembic_cfg.attributes["configure_logger"] = False

        # alembic is synchronous
        await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
        logger.info("Migrations completed successfully")

    async def _create_connection_pool(self) -> asyncpg.Pool:
        """Create asyncpg connection pool"""
        logger.info(f"Creating connection pool to {self.db_host}:{self.db_port}/{self.db_name}")

        pool = await asyncpg.create_pool(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            database=self.db_name,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )
        async with pool.acquire() as conn:
            current_db = await conn.fetchval("SELECT current_database()")
            if current_db != self.db_name:
                raise RuntimeError(f"Connected to wrong database: {current_db}, expected: {self.db_name}")

        return pool

    async def close(self):
        """Close all database connections"""
        logger.info("Closing database connections...")
        if self.pool:
            try:
                await self.pool.close()
                logger.info("Connection pool closed")
            except Exception as e:
                logger.error(f"Error closing connection pool: {e}")
        self.pool = None

    async def health_check(self) -> bool:
        """Check database connection health"""
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Database health check failed: {e}")
            return False


# Global database service instance
database_service = DatabaseService(Config())

__all__ = [
    "DatabaseService",
    "database_service",
]
