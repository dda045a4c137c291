"""Debt aggregation and settlement helpers.

Works on the joined share rows produced by ``Database.list_share_rows`` (one
row per expense share carrying debtor, creditor, amount and settled flag).
A share whose debtor is the payer is never a debt and is dropped up front.

Scopes implemented:
    - Per-debtor summary of outstanding and settled debts
    - Net balance per member over outstanding debts
    - Pairwise netting (A owes B minus B owes A)
    - Settlement plan: greedy largest-debtor / largest-creditor matching
    - Classification of settle requests

All arithmetic is Decimal; values leave this module as Decimal and are
converted to float at the response boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from trip_planner.models.constants import MAX_DB_ID
from trip_planner.services.money import ZERO, to_decimal


@dataclass(frozen=True)
class DebtDetail:
    expense_id: int
    description: str
    category: str
    debtor_id: str
    debtor_email: str
    creditor_id: str
    creditor_email: str
    amount: Decimal
    settled: bool
    settled_at: Optional[str] = None


@dataclass
class DebtorSummary:
    debtor_id: str
    debtor_email: str
    outstanding: List[DebtDetail] = field(default_factory=list)
    settled: List[DebtDetail] = field(default_factory=list)

    @property
    def total_owed(self) -> Decimal:
        return sum((d.amount for d in self.outstanding), ZERO)


@dataclass(frozen=True)
class Balance:
    user_id: str
    email: str
    is_owed: Decimal
    owes: Decimal

    @property
    def net(self) -> Decimal:
        return self.is_owed - self.owes


@dataclass(frozen=True)
class Transfer:
    from_user_id: str
    to_user_id: str
    amount: Decimal


def debts_from_rows(rows: Iterable[Dict[str, Any]]) -> List[DebtDetail]:
    debts = []
    for r in rows:
        if r["debtor_id"] == r["creditor_id"]:
            continue
        debts.append(
            DebtDetail(
                expense_id=int(r["expense_id"]),
                description=r["description"],
                category=r["category"],
                debtor_id=r["debtor_id"],
                debtor_email=r["debtor_email"],
                creditor_id=r["creditor_id"],
                creditor_email=r["creditor_email"],
                amount=to_decimal(r["share_amount"]),
                settled=bool(r["settled"]),
                settled_at=r.get("settled_at"),
            )
        )
    return debts


def summarize_debts(debts: Iterable[DebtDetail]) -> List[DebtorSummary]:
    """Group debts by debtor; debtors ordered by email."""
    by_debtor: Dict[str, DebtorSummary] = {}
    for d in debts:
        summary = by_debtor.get(d.debtor_id)
        if summary is None:
            summary = by_debtor[d.debtor_id] = DebtorSummary(d.debtor_id, d.debtor_email)
        (summary.settled if d.settled else summary.outstanding).append(d)
    return sorted(by_debtor.values(), key=lambda s: (s.debtor_email, s.debtor_id))


def summarize_user(debts: Sequence[DebtDetail], user_id: str, email: str) -> Tuple[DebtorSummary, List[DebtDetail]]:
    """Debts owed by ``user_id`` plus outstanding debts owed to them."""
    own = DebtorSummary(user_id, email)
    owed_to_user: List[DebtDetail] = []
    for d in debts:
        if d.debtor_id == user_id:
            (own.settled if d.settled else own.outstanding).append(d)
        elif d.creditor_id == user_id and not d.settled:
            owed_to_user.append(d)
    return own, owed_to_user


def net_balances(debts: Iterable[DebtDetail], members: Iterable[Dict[str, Any]]) -> List[Balance]:
    """Net position of every member (and any ex-member still holding debts)."""
    is_owed: Dict[str, Decimal] = {}
    owes: Dict[str, Decimal] = {}
    emails: Dict[str, str] = {}
    for m in members:
        emails[m["user_id"]] = m["email"]
        is_owed.setdefault(m["user_id"], ZERO)
        owes.setdefault(m["user_id"], ZERO)
    for d in debts:
        if d.settled:
            continue
        emails.setdefault(d.debtor_id, d.debtor_email)
        emails.setdefault(d.creditor_id, d.creditor_email)
        owes[d.debtor_id] = owes.get(d.debtor_id, ZERO) + d.amount
        is_owed[d.creditor_id] = is_owed.get(d.creditor_id, ZERO) + d.amount
        is_owed.setdefault(d.debtor_id, ZERO)
        owes.setdefault(d.creditor_id, ZERO)
    return sorted(
        (
            Balance(uid, emails[uid], is_owed.get(uid, ZERO), owes.get(uid, ZERO))
            for uid in emails
        ),
        key=lambda b: (b.email, b.user_id),
    )


def pairwise_debts(debts: Iterable[DebtDetail]) -> List[Transfer]:
    """Outstanding debts between each pair, netted in both directions."""
    gross: Dict[Tuple[str, str], Decimal] = {}
    for d in debts:
        if d.settled:
            continue
        key = (d.debtor_id, d.creditor_id)
        gross[key] = gross.get(key, ZERO) + d.amount
    result: List[Transfer] = []
    seen: set[Tuple[str, str]] = set()
    for (a, b), amount in gross.items():
        pair = (a, b) if a < b else (b, a)
        if pair in seen:
            continue
        seen.add(pair)
        net = gross.get((pair[0], pair[1]), ZERO) - gross.get((pair[1], pair[0]), ZERO)
        if net > 0:
            result.append(Transfer(pair[0], pair[1], net))
        elif net < 0:
            result.append(Transfer(pair[1], pair[0], -net))
    return sorted(result, key=lambda t: (t.from_user_id, t.to_user_id))


def settlement_plan(balances: Iterable[Balance]) -> List[Transfer]:
    """Transfers that zero every net balance.

    Debtors and creditors are matched greedily, largest first, ties broken
    by user id. Each step clears at least one side, so n members need at most
    n - 1 transfers.
    """
    debtors = [[b.user_id, -b.net] for b in balances if b.net < 0]
    creditors = [[b.user_id, b.net] for b in balances if b.net > 0]
    debtors.sort(key=lambda x: (-x[1], x[0]))
    creditors.sort(key=lambda x: (-x[1], x[0]))

    transfers: List[Transfer] = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debtor, creditor = debtors[i], creditors[j]
        amount = min(debtor[1], creditor[1])
        if amount > 0:
            transfers.append(Transfer(debtor[0], creditor[0], amount))
        debtor[1] -= amount
        creditor[1] -= amount
        if debtor[1] == 0:
            i += 1
        if creditor[1] == 0:
            j += 1
    return transfers


# ---------------- Settle request classification -----------------
@dataclass
class SettleClassification:
    to_settle: List[Tuple[int, str]] = field(default_factory=list)
    poorly_formatted: List[Any] = field(default_factory=list)
    not_found: List[Dict[str, Any]] = field(default_factory=list)
    unauthorized: List[Dict[str, Any]] = field(default_factory=list)


def _parse_entry(entry: Any) -> Optional[Tuple[int, str]]:
    if not isinstance(entry, dict):
        return None
    expense_id = entry.get("expense_id")
    debtor = entry.get("debtor_user_id")
    if isinstance(expense_id, bool) or not isinstance(expense_id, int):
        return None
    if not 1 <= expense_id <= MAX_DB_ID:
        return None
    if not isinstance(debtor, str) or not debtor.strip():
        return None
    return expense_id, debtor


def classify_settle_requests(
    entries: Sequence[Any],
    trip_id: int,
    caller_id: str,
    lookup: Callable[[int, str], Optional[Dict[str, Any]]],
) -> SettleClassification:
    """Split settle requests into settleable keys and rejected buckets.

    ``lookup(expense_id, debtor_id)`` returns the share row (with ``trip_id``,
    ``paid_by`` and ``settled``) or None. Only the debtor or the expense payer
    may settle a share. Duplicate entries are settled once.
    """
    result = SettleClassification()
    seen: set[Tuple[int, str]] = set()
    for entry in entries:
        key = _parse_entry(entry)
        if key is None:
            result.poorly_formatted.append(entry)
            continue
        if key in seen:
            continue
        seen.add(key)
        expense_id, debtor_id = key
        ref = {"expense_id": expense_id, "debtor_user_id": debtor_id}
        share = lookup(expense_id, debtor_id)
        if (
            share is None
            or int(share["trip_id"]) != trip_id
            or bool(share["settled"])
            or share["paid_by"] == debtor_id
        ):
            result.not_found.append(ref)
            continue
        if caller_id not in (debtor_id, share["paid_by"]):
            result.unauthorized.append(ref)
            continue
        result.to_settle.append(key)
    return result
