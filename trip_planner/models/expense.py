from __future__ import annotations

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from trip_planner.services.money import MAX_AMOUNT, has_at_most_two_decimals
from .constants import EXPENSE_CATEGORIES, DbId


def _normalize_category(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in EXPENSE_CATEGORIES:
        raise ValueError(
            f"unsupported category; allowed: {', '.join(EXPENSE_CATEGORIES)}"
        )
    return normalized


def _check_amount(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError("amount must be a finite number")
    if value <= 0.01:
        raise ValueError("amount must be greater than 0.01")
    if value > MAX_AMOUNT:
        raise ValueError(f"amount must not exceed {MAX_AMOUNT}")
    if not has_at_most_two_decimals(value):
        raise ValueError("amount must have at most 2 decimal places")
    return value


def _unique_emails(emails: List[str]) -> List[str]:
    seen: dict[str, None] = {}
    for e in emails:
        seen.setdefault(e.lower(), None)
    return list(seen)


class ExpenseIn(BaseModel):
    amount: float
    category: str
    description: str
    paid_by_email: Optional[EmailStr] = None
    split_among_emails: Optional[List[EmailStr]] = Field(None, min_length=1)

    @field_validator("amount")
    @classmethod
    def valid_amount(cls, v: float) -> float:
        return _check_amount(v)

    @field_validator("category")
    @classmethod
    def valid_category(cls, v: str) -> str:
        return _normalize_category(v)

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description cannot be empty")
        return v.strip()

    @field_validator("split_among_emails")
    @classmethod
    def dedupe_split(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique_emails(v) if v is not None else None


class ExpenseUpdateIn(BaseModel):
    """Partial update; at least one field must be provided.

    Changing amount, payer or split recomputes every share.
    """

    amount: Optional[float] = None
    category: Optional[str] = None
    description: Optional[str] = None
    paid_by_email: Optional[EmailStr] = None
    split_among_emails: Optional[List[EmailStr]] = Field(None, min_length=1)

    @field_validator("amount")
    @classmethod
    def valid_amount(cls, v: Optional[float]) -> Optional[float]:
        return _check_amount(v) if v is not None else None

    @field_validator("category")
    @classmethod
    def valid_category(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_category(v) if v is not None else None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("description cannot be empty")
        return v.strip() if v is not None else None

    @field_validator("split_among_emails")
    @classmethod
    def dedupe_split(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique_emails(v) if v is not None else None

    @model_validator(mode="after")
    def at_least_one(self) -> "ExpenseUpdateIn":
        if not any(
            getattr(self, f) is not None
            for f in ("amount", "category", "description", "paid_by_email", "split_among_emails")
        ):
            raise ValueError("at least one field must be provided for update")
        return self


class ShareOut(BaseModel):
    user_id: str
    email: str
    share_amount: float
    settled: bool
    settled_at: Optional[datetime] = None


class ExpenseOut(BaseModel):
    id: int
    trip_id: int
    description: str
    amount: float
    category: str
    paid_by: str
    paid_by_email: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    shares: List[ShareOut] = []


class ExpenseBatchDelete(BaseModel):
    expense_ids: List[DbId] = Field(..., min_length=1)


class CategoryBreakdown(BaseModel):
    category: str
    total: float
    count: int
    percentage: float


class PayerTotal(BaseModel):
    user_id: str
    email: str
    total_paid: float


class ExpenseBreakdownOut(BaseModel):
    total: float
    expense_count: int
    categories: List[CategoryBreakdown]
    by_payer: List[PayerTotal]
    my_share_total: float
