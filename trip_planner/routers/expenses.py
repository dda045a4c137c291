from __future__ import annotations

from decimal import Decimal
import logging
from typing import Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends, Query, status

from trip_planner.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import EXPENSE_CATEGORIES
from trip_planner.models.expense import (
    CategoryBreakdown,
    ExpenseBatchDelete,
    ExpenseBreakdownOut,
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdateIn,
    PayerTotal,
    ShareOut,
)
from trip_planner.models.trip import BatchDeleteOut, DeletedOut
from trip_planner.routers.params import IdPath
from trip_planner.services.access import require_member
from trip_planner.services.money import ZERO, as_float, to_decimal
from trip_planner.services.notifications import create_notification
from trip_planner.services.splitting import split_equally

router = APIRouter(prefix="/api/trips/{trip_id}/expenses", tags=["expenses"])
logger = logging.getLogger("trip_planner.expenses")


# Helpers ----------------------------------------------------------


def _row_to_expense_out(row: dict, shares: Sequence[dict]) -> ExpenseOut:
    return ExpenseOut(
        id=row["id"],
        trip_id=row["trip_id"],
        description=row["description"],
        amount=row["amount"],
        category=row["category"],
        paid_by=row["paid_by"],
        paid_by_email=row["paid_by_email"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        shares=[
            ShareOut(
                user_id=s["user_id"],
                email=s["email"],
                share_amount=s["share_amount"],
                settled=bool(s["settled"]),
                settled_at=s.get("settled_at"),
            )
            for s in shares
        ],
    )


def _load_expense(db: Database, trip_id: int, expense_id: int) -> ExpenseOut:
    row = db.get_expense(trip_id, expense_id)
    if not row:
        raise NotFoundError("Expense not found")
    shares = db.get_shares_for_expenses([expense_id])[expense_id]
    return _row_to_expense_out(row, shares)


def _members_by_email(db: Database, trip_id: int) -> Dict[str, dict]:
    return {m["email"].lower(): m for m in db.list_members(trip_id)}


def _resolve_payer(members: Dict[str, dict], email: Optional[str], default_id: str) -> str:
    if email is None:
        return default_id
    member = members.get(email.lower())
    if not member:
        raise ForbiddenError(f"Payer {email} is not a member of this trip")
    return member["user_id"]


def _resolve_split(members: Dict[str, dict], emails: Optional[List[str]]) -> List[str]:
    if emails is None:
        return [m["user_id"] for m in members.values()]
    missing = [e for e in emails if e.lower() not in members]
    if missing:
        raise ForbiddenError(
            "Some users in the split are not members of this trip",
            extra={"not_members": missing},
        )
    return [members[e.lower()]["user_id"] for e in emails]


def _share_rows(amount: float, participants: List[str], payer_id: str) -> List[tuple]:
    return [(s.user_id, as_float(s.amount)) for s in split_equally(amount, participants, payer_id)]


def _can_delete(expense: dict, shares: Sequence[dict], user_id: str) -> bool:
    if user_id in (expense["paid_by"], expense["created_by"]):
        return True
    return any(s["user_id"] == user_id for s in shares)


# Routes -----------------------------------------------------------
@router.post(
    "",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add a shared expense split equally among members",
)
async def create_expense(
    trip_id: IdPath,
    payload: ExpenseIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    # 1. Caller must belong to the trip
    require_member(db, trip_id, user.id)

    # 2. Resolve payer and participants against current membership
    members = _members_by_email(db, trip_id)
    payer_id = _resolve_payer(members, payload.paid_by_email, user.id)
    participants = _resolve_split(members, payload.split_among_emails)

    # 3. Exact-cent equal split, persisted atomically with the expense
    expense_id = db.create_expense(
        trip_id=trip_id,
        description=payload.description,
        amount=as_float(to_decimal(payload.amount)),
        category=payload.category,
        paid_by=payer_id,
        created_by=user.id,
        shares=_share_rows(payload.amount, participants, payer_id),
    )
    logger.info(
        "expense %s created in trip %s",
        expense_id,
        trip_id,
        extra={"fields": {"amount": payload.amount, "participants": len(participants)}},
    )

    # 4. Let everyone who now owes a share know
    expense = _load_expense(db, trip_id, expense_id)
    create_notification(
        db,
        [s.user_id for s in expense.shares if s.user_id != user.id],
        "EXPENSE_CREATED",
        "New expense",
        f'{user.full_name or user.email} added "{expense.description}" ({expense.amount:.2f}).',
        trip_id=trip_id,
        related_id=expense_id,
    )
    return expense


@router.get("", response_model=List[ExpenseOut], summary="List trip expenses")
async def list_expenses(
    trip_id: IdPath,
    category: Optional[str] = Query(None, description="Filter by category"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    if category is not None:
        category = category.strip().lower()
        if category not in EXPENSE_CATEGORIES:
            raise BadRequestError("unsupported category")
    rows = db.list_expenses(trip_id, category=category)
    shares = db.get_shares_for_expenses([r["id"] for r in rows])
    return [_row_to_expense_out(r, shares[r["id"]]) for r in rows]


@router.get(
    "/breakdown",
    response_model=ExpenseBreakdownOut,
    summary="Expense totals grouped by category and payer",
)
async def expense_breakdown(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    rows = db.list_expenses(trip_id)
    shares = db.get_shares_for_expenses([r["id"] for r in rows])

    total = ZERO
    by_category: Dict[str, List] = {c: [ZERO, 0] for c in EXPENSE_CATEGORIES}
    by_payer: Dict[str, List] = {}
    my_share = ZERO
    for r in rows:
        amount = to_decimal(r["amount"])
        total += amount
        bucket = by_category.setdefault(r["category"], [ZERO, 0])
        bucket[0] += amount
        bucket[1] += 1
        payer = by_payer.setdefault(r["paid_by"], [r["paid_by_email"], ZERO])
        payer[1] += amount
        for s in shares[r["id"]]:
            if s["user_id"] == user.id:
                my_share += to_decimal(s["share_amount"])

    def pct(part: Decimal) -> float:
        return as_float(part * 100 / total) if total > 0 else 0.0

    categories = sorted(
        (
            CategoryBreakdown(category=c, total=as_float(v[0]), count=v[1], percentage=pct(v[0]))
            for c, v in by_category.items()
        ),
        key=lambda c: (-c.total, c.category),
    )
    payers = sorted(
        (PayerTotal(user_id=uid, email=v[0], total_paid=as_float(v[1])) for uid, v in by_payer.items()),
        key=lambda p: (-p.total_paid, p.email),
    )
    return ExpenseBreakdownOut(
        total=as_float(total),
        expense_count=len(rows),
        categories=categories,
        by_payer=payers,
        my_share_total=as_float(my_share),
    )


@router.get("/{expense_id}", response_model=ExpenseOut, summary="Get one expense")
async def get_expense(
    trip_id: IdPath,
    expense_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return _load_expense(db, trip_id, expense_id)


@router.put("/{expense_id}", response_model=ExpenseOut, summary="Edit an expense (partial)")
async def update_expense(
    trip_id: IdPath,
    expense_id: IdPath,
    payload: ExpenseUpdateIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    # 1. Fetch existing expense and check ownership
    require_member(db, trip_id, user.id)
    row = db.get_expense(trip_id, expense_id)
    if not row:
        raise NotFoundError("Expense not found")
    if user.id not in (row["created_by"], row["paid_by"]):
        raise ForbiddenError("Only the expense creator or payer can edit it")
    current_shares = db.get_shares_for_expenses([expense_id])[expense_id]

    # 2. Merge requested changes over the stored record
    members = _members_by_email(db, trip_id)
    payer_id = _resolve_payer(members, payload.paid_by_email, row["paid_by"])
    if payload.split_among_emails is not None:
        participants = _resolve_split(members, payload.split_among_emails)
    else:
        participants = [s["user_id"] for s in current_shares]
    amount = payload.amount if payload.amount is not None else row["amount"]

    reshare = (
        to_decimal(amount) != to_decimal(row["amount"])
        or payer_id != row["paid_by"]
        or set(participants) != {s["user_id"] for s in current_shares}
    )

    # 3. Shares already paid back cannot be silently rewritten
    new_shares = None
    if reshare:
        if any(s["settled"] and s["user_id"] != row["paid_by"] for s in current_shares):
            raise ConflictError(
                "Expense has settled shares; amount, payer and split can no longer change"
            )
        new_shares = _share_rows(amount, participants, payer_id)

    fields = {
        "amount": as_float(to_decimal(amount)),
        "paid_by": payer_id,
    }
    if payload.category is not None:
        fields["category"] = payload.category
    if payload.description is not None:
        fields["description"] = payload.description

    # 4. Persist atomically
    try:
        db.update_expense(expense_id, fields, shares=new_shares)
    except ValueError:
        raise NotFoundError("Expense not found")
    return _load_expense(db, trip_id, expense_id)


@router.delete("/{expense_id}", response_model=DeletedOut, summary="Delete an expense")
async def delete_expense(
    trip_id: IdPath,
    expense_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    row = db.get_expense(trip_id, expense_id)
    if not row:
        raise NotFoundError("Expense not found")
    shares = db.get_shares_for_expenses([expense_id])[expense_id]
    if not _can_delete(row, shares, user.id):
        raise ForbiddenError("You are not part of this expense")
    db.delete_expenses(trip_id, [expense_id])
    logger.info("expense %s deleted from trip %s", expense_id, trip_id)
    return DeletedOut(deleted_id=expense_id)


@router.delete("", response_model=BatchDeleteOut, summary="Delete several expenses")
async def delete_expenses(
    trip_id: IdPath,
    payload: ExpenseBatchDelete,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    requested = list(dict.fromkeys(payload.expense_ids))
    rows = db.get_expenses_by_ids(trip_id, requested)
    if not rows:
        raise NotFoundError("No matching expenses found for this trip")
    shares = db.get_shares_for_expenses([r["id"] for r in rows])
    allowed = [r["id"] for r in rows if _can_delete(r, shares[r["id"]], user.id)]
    if not allowed:
        raise ForbiddenError("You are not part of any of these expenses")
    deleted = db.delete_expenses(trip_id, allowed)
    return BatchDeleteOut(
        deleted_count=deleted,
        ignored_ids=[eid for eid in requested if eid not in set(allowed)],
    )
