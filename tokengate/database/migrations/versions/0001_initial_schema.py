"""initial token gate schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "gated_chats",
        sa.Column("chat_id", sa.BigInteger(), primary_key=True),
        sa.Column("admin_id", sa.BigInteger(), nullable=False),
        sa.Column("token_mint", sa.String(44), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tiers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("min_amount", sa.BigInteger(), nullable=False),
        sa.Column("status_name", sa.String(100), nullable=False),
        sa.Column("role_id", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("chat_id", "min_amount", name="uq_tiers_chat_min_amount"),
    )
    op.create_index("ix_tiers_chat_id", "tiers", ["chat_id"])

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("wallet_address", sa.String(44), nullable=False),
        sa.Column("status", sa.String(100), nullable=True),
        sa.Column("balance", sa.Numeric(), nullable=False, server_default="0"),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "chat_id", name="uq_memberships_user_chat"),
    )
    op.create_index("ix_memberships_chat_id", "memberships", ["chat_id"])

    op.create_table(
        "verification_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("wallet_address", sa.String(44), nullable=True),
        sa.Column("balance", sa.Numeric(), nullable=True),
        sa.Column("status", sa.String(100), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_verification_log_user_id", "verification_log", ["user_id"])
    op.create_index("ix_verification_log_chat_id", "verification_log", ["chat_id"])


def downgrade() -> None:
    op.drop_table("verification_log")
    op.drop_table("memberships")
    op.drop_table("tiers")
    op.drop_table("gated_chats")
