from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from fastapi import APIRouter, Depends

from trip_planner.core.errors import BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.expense_share import (
    BalanceOut,
    BalancesOut,
    DebtDetailOut,
    DebtorSummaryOut,
    PairwiseDebtOut,
    SettleIn,
    SettleOut,
    ShareRef,
    TransferOut,
    UserDebtSummaryOut,
)
from trip_planner.routers.params import IdPath
from trip_planner.services import settlement
from trip_planner.services.access import require_member
from trip_planner.services.money import ZERO, as_float
from trip_planner.services.notifications import create_notification

router = APIRouter(prefix="/api/trips/{trip_id}/expense-shares", tags=["expense-shares"])
logger = logging.getLogger("trip_planner.settlement")


def _detail_out(d: settlement.DebtDetail) -> DebtDetailOut:
    return DebtDetailOut(
        expense_id=d.expense_id,
        description=d.description,
        category=d.category,
        debtor_id=d.debtor_id,
        creditor_id=d.creditor_id,
        creditor_email=d.creditor_email,
        amount=as_float(d.amount),
        settled=d.settled,
        settled_at=d.settled_at,
    )


def _summary_fields(s: settlement.DebtorSummary) -> dict:
    return {
        "debtor_id": s.debtor_id,
        "debtor_email": s.debtor_email,
        "total_owed": as_float(s.total_owed),
        "outstanding": [_detail_out(d) for d in s.outstanding],
        "settled": [_detail_out(d) for d in s.settled],
    }


def _trip_debts(db: Database, trip_id: int) -> List[settlement.DebtDetail]:
    return settlement.debts_from_rows(db.list_share_rows(trip_id))


def _refs(keys: Iterable) -> List[ShareRef]:
    return [ShareRef(expense_id=k[0], debtor_user_id=k[1]) for k in keys]


@router.get("/debt-summary", response_model=List[DebtorSummaryOut], summary="Who owes whom, per debtor")
async def debt_summary(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    summaries = settlement.summarize_debts(_trip_debts(db, trip_id))
    return [DebtorSummaryOut(**_summary_fields(s)) for s in summaries]


@router.get(
    "/debt-summary/{user_id}",
    response_model=UserDebtSummaryOut,
    summary="Debts owed by and to one member",
)
async def user_debt_summary(
    trip_id: IdPath,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    target = db.get_member(trip_id, user_id)
    if not target:
        raise NotFoundError("User is not a member of this trip")
    own, owed_to_user = settlement.summarize_user(
        _trip_debts(db, trip_id), user_id, target["email"]
    )
    return UserDebtSummaryOut(
        **_summary_fields(own),
        total_owed_to_user=as_float(sum((d.amount for d in owed_to_user), ZERO)),
        owed_to_user=[_detail_out(d) for d in owed_to_user],
    )


@router.get("/balances", response_model=BalancesOut, summary="Net balances and a settlement plan")
async def balances(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    debts = _trip_debts(db, trip_id)
    nets = settlement.net_balances(debts, db.list_members(trip_id))
    emails: Dict[str, str] = {b.user_id: b.email for b in nets}
    return BalancesOut(
        balances=[
            BalanceOut(
                user_id=b.user_id,
                email=b.email,
                is_owed=as_float(b.is_owed),
                owes=as_float(b.owes),
                net=as_float(b.net),
            )
            for b in nets
        ],
        pairwise=[
            PairwiseDebtOut(from_user_id=t.from_user_id, to_user_id=t.to_user_id, amount=as_float(t.amount))
            for t in settlement.pairwise_debts(debts)
        ],
        settlement_plan=[
            TransferOut(
                from_user_id=t.from_user_id,
                from_email=emails[t.from_user_id],
                to_user_id=t.to_user_id,
                to_email=emails[t.to_user_id],
                amount=as_float(t.amount),
            )
            for t in settlement.settlement_plan(nets)
        ],
    )


@router.patch("/settle", response_model=SettleOut, summary="Mark expense shares as paid back")
async def settle_shares(
    trip_id: IdPath,
    payload: SettleIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    # 1. Classify every requested share
    require_member(db, trip_id, user.id)
    result = settlement.classify_settle_requests(
        payload.expense_shares_to_settle, trip_id, user.id, db.get_share
    )
    report = {
        "poorly_formatted": result.poorly_formatted,
        "not_found": [ShareRef(**r).model_dump() for r in result.not_found],
        "unauthorized": [ShareRef(**r).model_dump() for r in result.unauthorized],
    }

    # 2. Nothing settleable: status follows the first rejected bucket
    if not result.to_settle:
        extra = {"settled_count": 0, "settled": [], **report}
        if result.poorly_formatted:
            raise BadRequestError("Some settle requests are poorly formatted", extra=extra)
        if result.not_found:
            raise NotFoundError("No matching unsettled shares found", extra=extra)
        raise ForbiddenError("You may only settle shares you owe or were owed", extra=extra)

    # 3. Settle atomically, then tell the other party
    settled_count = db.settle_shares(result.to_settle)
    logger.info(
        "settled %s share(s) in trip %s",
        settled_count,
        trip_id,
        extra={"fields": {"rejected": len(result.poorly_formatted) + len(result.not_found) + len(result.unauthorized)}},
    )
    for expense_id, debtor_id in result.to_settle:
        share = db.get_share(expense_id, debtor_id)
        other = share["paid_by"] if user.id == debtor_id else debtor_id
        create_notification(
            db,
            [other],
            "EXPENSE_SHARE_SETTLED",
            "Share settled",
            f'{user.full_name or user.email} settled a share of "{share["description"]}" ({share["share_amount"]:.2f}).',
            trip_id=trip_id,
            related_id=expense_id,
            data={"expense_id": expense_id, "debtor_user_id": debtor_id},
        )

    return SettleOut(
        settled_count=settled_count,
        settled=_refs(result.to_settle),
        **report,
    )
