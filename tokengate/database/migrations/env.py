"""
tokengate/database/migrations/env.py
Alembic environment configuration for PostgreSQL
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from tokengate.database.models.sqlalchemy_models import Base
from tokengate.utils.config import Config

# this is the Alembic Config object
config = context.config

# DatabaseService passes the URL in; fall back to the environment for CLI use.
# Use synchronous psycopg2 driver for migrations
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", Config().dsn)

# Interpret the config file for Python logging, but leave the bot's handlers alone
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
