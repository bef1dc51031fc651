"""
tokengate/database/models/membership.py
Membership model (matches table: memberships)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

STATUS_REMOVED = "removed"
STATUS_REJECTED = "rejected"


@dataclass
class Membership:
    user_id: int
    chat_id: int
    wallet_address: str
    status: Optional[str] = None  # None = never checked
    balance: float = 0.0
    last_checked: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def short_wallet(self) -> str:
        if len(self.wallet_address) <= 16:
            return self.wallet_address
        return f"{self.wallet_address[:8]}...{self.wallet_address[-8:]}"

    @classmethod
    def from_row(cls, row: dict) -> "Membership":
        balance = row.get("balance")
        return cls(
            id=row.get("id"),
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            wallet_address=row["wallet_address"],
            status=row.get("status"),
            balance=float(balance) if balance is not None else 0.0,
            last_checked=row.get("last_checked"),
        )
