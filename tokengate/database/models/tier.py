"""
tokengate/database/models/tier.py
Tier model (matches table: tiers)
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Tier:
    min_amount: int  # unique per chat
    status_name: str
    chat_id: Optional[int] = None
    role_id: Optional[str] = None  # reserved for role mapping
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "Tier":
        return cls(
            id=row.get("id"),
            chat_id=row.get("chat_id"),
            min_amount=int(row["min_amount"]),
            status_name=row["status_name"],
            role_id=row.get("role_id"),
        )
