# tokengate/utils/config.py

import os
from dataclasses import dataclass
from typing import List


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw.strip())
    except ValueError:
        return default


@dataclass
class Config:
    # Discord
    bot_token: str = os.getenv("DISCORD_BOT_TOKEN", "")
    command_prefix: str = os.getenv("COMMAND_PREFIX", "!")
    admin_log_channel_id: int = _env_int("ADMIN_LOG_CHANNEL_ID", 0)
    sync_guild_id: int = _env_int("SYNC_GUILD_ID", 0)  # optional guild for instant slash sync

    # Database (Postgres)
    db_host: str = os.getenv("DB_HOST", "postgres")
    db_port: int = _env_int("DB_PORT", 5432)
    db_name: str = os.getenv("DB_NAME", "tokengate")
    db_user: str = os.getenv("DB_USER", "tokengate")
    db_password: str = os.getenv("DB_PASSWORD", "")
    run_migrations: bool = _env_bool("RUN_MIGRATIONS", True)

    # Helius balance oracle
    helius_api_key: str = os.getenv("HELIUS_API_KEY", "")
    helius_rpc_url: str = os.getenv("HELIUS_RPC_URL", "https://mainnet.helius-rpc.com")
    rate_limit_ms: int = _env_int("RATE_LIMIT_MS", 100)  # min spacing between RPC calls
    oracle_timeout_seconds: int = _env_int("ORACLE_TIMEOUT_SECONDS", 30)

    # Reconciliation (five-field cron, default: top of every hour)
    cron_schedule: str = os.getenv("CRON_SCHEDULE", "0 * * * *")
    notify_members: bool = _env_bool("NOTIFY_MEMBERS", True)

    def missing(self) -> List[str]:
        """Names of required settings that are not set."""
        required = {
            "DISCORD_BOT_TOKEN": self.bot_token,
            "HELIUS_API_KEY": self.helius_api_key,
            "DB_PASSWORD": self.db_password,
        }
        return [name for name, value in required.items() if not value]

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
