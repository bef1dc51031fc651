# tokengate/services/tier_resolver.py
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..database.models.tier import Tier
from ..utils.errors import ValidationError


def sort_tiers(tiers: Iterable[Tier]) -> List[Tier]:
    """Highest threshold first"""
    return sorted(tiers, key=lambda t: t.min_amount, reverse=True)


def select_tier(balance: float, tiers: Iterable[Tier]) -> Optional[Tier]:
    """
    Return the tier with the greatest min_amount <= balance, or None.
    Does not trust the caller's ordering.
    """
    for tier in sort_tiers(tiers):
        if balance >= tier.min_amount:
            return tier
    return None


def describe_tiers(tiers: Sequence[Tier]) -> str:
    if not tiers:
        return "No tiers configured."
    return "\n".join(f"• **{t.status_name}**: {t.min_amount:,}+ tokens" for t in sort_tiers(tiers))


def parse_tier_list(text: str) -> List[Tier]:
    """
    Parse admin input like "100000:Whale, 10000:Holder" into tiers.
    Raises ValidationError on malformed entries, negative or duplicate amounts.
    """
    tiers: List[Tier] = []
    for chunk in (text or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        amount_text, sep, name = chunk.partition(":")
        name = name.strip()
        if not sep or not name:
            raise ValidationError(f"Tier '{chunk}' must look like <amount>:<status name>")
        try:
            amount = int(amount_text.strip().replace("_", ""))
        except ValueError:
            raise ValidationError(f"Tier amount '{amount_text.strip()}' is not a whole number")
        tiers.append(Tier(min_amount=amount, status_name=name))

    if not tiers:
        raise ValidationError("At least one tier is required")
    check_tier_set(tiers)
    return sort_tiers(tiers)


def check_tier_set(tiers: Sequence[Tier]) -> None:
    seen = set()
    for tier in tiers:
        if tier.min_amount < 0:
            raise ValidationError(f"Tier '{tier.status_name}' has a negative minimum amount")
        if tier.min_amount in seen:
            raise ValidationError(f"Duplicate tier minimum amount: {tier.min_amount}")
        seen.add(tier.min_amount)
