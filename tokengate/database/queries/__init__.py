"""
tokengate/database/queries/__init__.py
Database queries package
"""
from .chat_queries import ChatQueries
from .membership_queries import MembershipQueries
from .tier_queries import TierQueries
from .verification_log_queries import VerificationLogQueries

__all__ = [
    "ChatQueries",
    "TierQueries",
    "MembershipQueries",
    "VerificationLogQueries",
]
