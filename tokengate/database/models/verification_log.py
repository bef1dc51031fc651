# tokengate/database/models/verification_log.py
"""
VerificationLogEntry model (matches table: verification_log)
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

ACTION_VERIFIED = "verified"
ACTION_STATUS_UPDATED = "status_updated"
ACTION_ACCESS_GRANTED = "access_granted"
ACTION_ACCESS_REVOKED = "access_revoked"
ACTION_INSUFFICIENT_BALANCE = "insufficient_balance"
ACTION_CHECK_FAILED = "balance_check_failed"

STATUS_ERROR = "error"


def check_failed_action(error: Optional[str]) -> str:
    return f"{ACTION_CHECK_FAILED}: {error or 'unknown error'}"


@dataclass
class VerificationLogEntry:
    user_id: int
    chat_id: int
    wallet_address: Optional[str]
    balance: float
    status: Optional[str]
    action: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "VerificationLogEntry":
        balance = row.get("balance")
        return cls(
            id=row.get("id"),
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            wallet_address=row.get("wallet_address"),
            balance=float(balance) if balance is not None else 0.0,
            status=row.get("status"),
            action=row["action"],
            created_at=row.get("created_at"),
        )
