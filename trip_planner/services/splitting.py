"""Equal expense splitting with exact cents.

A naive ``round(amount / n, 2)`` per member drifts: 100.00 across three
members gives 3 x 33.33 = 99.99. Here every member gets the amount divided
by n rounded down to a cent, and the leftover cents (always fewer than n)
are handed out one at a time. The payer is first in line when they take part
in the split, then everyone else in the order given. The shares therefore
always add up to the expense amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from trip_planner.services.money import CENT, floor_cents, to_decimal


@dataclass(frozen=True)
class Share:
    user_id: str
    amount: Decimal


def _ordered_participants(participants: Sequence[str], payer_id: Optional[str]) -> List[str]:
    seen: set[str] = set()
    unique: List[str] = []
    for uid in participants:
        if uid not in seen:
            seen.add(uid)
            unique.append(uid)
    if payer_id is not None and payer_id in seen:
        unique.remove(payer_id)
        unique.insert(0, payer_id)
    return unique


def split_equally(
    amount, participants: Sequence[str], payer_id: Optional[str] = None
) -> List[Share]:
    """Split ``amount`` across ``participants`` so the shares sum exactly to it.

    Duplicate participant ids are collapsed. Raises ValueError for an empty
    participant list or a non-positive amount.
    """
    total = to_decimal(amount)
    if total <= 0:
        raise ValueError("amount must be positive")
    ordered = _ordered_participants(participants, payer_id)
    if not ordered:
        raise ValueError("at least one participant is required")

    n = len(ordered)
    base = floor_cents(total / n)
    leftover_cents = int((total - base * n) / CENT)
    shares = []
    for index, uid in enumerate(ordered):
        extra = CENT if index < leftover_cents else Decimal("0")
        shares.append(Share(user_id=uid, amount=base + extra))
    return shares
