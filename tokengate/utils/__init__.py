"""
tokengate/utils/__init__.py
Utilities package for the token gate bot
"""

from .config import Config
from .errors import (
    EnforcementError,
    OracleError,
    PersistenceError,
    TokenGateError,
    ValidationError,
)
from .logging_config import setup_logging

__all__ = [
    "Config",
    "setup_logging",
    "TokenGateError",
    "ValidationError",
    "OracleError",
    "PersistenceError",
    "EnforcementError",
]
