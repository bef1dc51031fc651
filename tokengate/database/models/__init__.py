"""
tokengate/database/models/__init__.py
Database models package
"""
from .gated_chat import GatedChat
from .membership import Membership, STATUS_REJECTED, STATUS_REMOVED
from .tier import Tier
from .verification_log import VerificationLogEntry

__all__ = [
    "GatedChat",
    "Tier",
    "Membership",
    "VerificationLogEntry",
    "STATUS_REMOVED",
    "STATUS_REJECTED",
]
