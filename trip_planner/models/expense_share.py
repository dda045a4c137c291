from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class DebtDetailOut(BaseModel):
    expense_id: int
    description: str
    category: str
    debtor_id: str
    creditor_id: str
    creditor_email: str
    amount: float
    settled: bool
    settled_at: Optional[datetime] = None


class DebtorSummaryOut(BaseModel):
    debtor_id: str
    debtor_email: str
    total_owed: float
    outstanding: List[DebtDetailOut]
    settled: List[DebtDetailOut]


class UserDebtSummaryOut(DebtorSummaryOut):
    total_owed_to_user: float
    owed_to_user: List[DebtDetailOut]


class BalanceOut(BaseModel):
    user_id: str
    email: str
    is_owed: float
    owes: float
    net: float


class PairwiseDebtOut(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: float


class TransferOut(BaseModel):
    from_user_id: str
    from_email: str
    to_user_id: str
    to_email: str
    amount: float


class BalancesOut(BaseModel):
    balances: List[BalanceOut]
    pairwise: List[PairwiseDebtOut]
    settlement_plan: List[TransferOut]


class SettleIn(BaseModel):
    # entries are classified server side so malformed ones can be reported
    expense_shares_to_settle: List[Any] = Field(..., min_length=1)


class ShareRef(BaseModel):
    expense_id: int
    debtor_user_id: str


class SettleOut(BaseModel):
    settled_count: int
    settled: List[ShareRef]
    poorly_formatted: List[Any]
    not_found: List[ShareRef]
    unauthorized: List[ShareRef]
