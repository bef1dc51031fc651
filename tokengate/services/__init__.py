"""
tokengate/services/__init__.py
Services package for the token gate bot
"""

from .access_store import AccessStateStore
from .balance_oracle import BalanceOracle, BalanceResult, RateLimiter
from .logging_service import EmbedLogger, LogLevel
from .reconciliation_service import MembershipOutcome, ReconciliationService, RunSummary
from .tier_resolver import select_tier

__all__ = [
    "AccessStateStore",
    "BalanceOracle",
    "BalanceResult",
    "RateLimiter",
    "EmbedLogger",
    "LogLevel",
    "ReconciliationService",
    "RunSummary",
    "MembershipOutcome",
    "select_tier",
]
