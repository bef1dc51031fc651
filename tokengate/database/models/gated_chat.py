"""
tokengate/database/models/gated_chat.py
GatedChat model (matches table: gated_chats)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class GatedChat:
    chat_id: int  # Discord guild ID
    admin_id: int  # user who ran setup
    token_mint: str  # mint address of the gated token
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "GatedChat":
        """Create GatedChat from database row"""
        return cls(
            chat_id=row["chat_id"],
            admin_id=row["admin_id"],
            token_mint=row["token_mint"],
            is_active=bool(row.get("is_active", True)),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
