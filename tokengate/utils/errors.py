"""
tokengate/utils/errors.py
Error taxonomy shared by the oracle, the store and the reconciliation service
"""


class TokenGateError(Exception):
    """Base class for all token gate errors"""


class ValidationError(TokenGateError):
    """Malformed input (wallet / mint address, tier list). Raised before any I/O."""


class OracleError(TokenGateError):
    """Balance lookup failed: transport, timeout or API-reported error.

    Never escapes BalanceOracle.resolve(); it is folded into a failed BalanceResult.
    """


class PersistenceError(TokenGateError):
    """A read or write against the access state store failed."""


class EnforcementError(TokenGateError):
    """The platform refused to reset a member's access."""

    def __init__(self, group_id: int, user_id: int, reason: str):
        super().__init__(f"Failed to reset membership of {user_id} in {group_id}: {reason}")
        self.group_id = group_id
        self.user_id = user_id
        self.reason = reason
