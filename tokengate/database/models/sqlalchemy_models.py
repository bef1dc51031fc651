"""
tokengate/database/models/sqlalchemy_models.py
SQLAlchemy models for Alembic migrations
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class GatedChat(Base):
    """A guild whose membership is gated on a token balance"""
    __tablename__ = "gated_chats"

    chat_id = Column(BigInteger, primary_key=True)  # Discord guild ID
    admin_id = Column(BigInteger, nullable=False)
    token_mint = Column(String(44), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Tier(Base):
    """Minimum balance required for a named status in one chat"""
    __tablename__ = "tiers"
    __table_args__ = (UniqueConstraint("chat_id", "min_amount", name="uq_tiers_chat_min_amount"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    min_amount = Column(BigInteger, nullable=False)
    status_name = Column(String(100), nullable=False)
    role_id = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Membership(Base):
    """Wallet linked by a user in one chat, with the last computed status"""
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "chat_id", name="uq_memberships_user_chat"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=False, index=True)
    wallet_address = Column(String(44), nullable=False)
    status = Column(String(100), nullable=True)
    balance = Column(Numeric, nullable=False, server_default="0")
    last_checked = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class VerificationLog(Base):
    """Append-only audit trail of verification outcomes"""
    __tablename__ = "verification_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    wallet_address = Column(String(44), nullable=True)
    balance = Column(Numeric, nullable=True)
    status = Column(String(100), nullable=True)
    action = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
