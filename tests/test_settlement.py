from decimal import Decimal

from trip_planner.services import settlement


def row(expense_id, debtor, creditor, amount, settled=False):
    return {
        "expense_id": expense_id,
        "debtor_id": debtor,
        "debtor_email": f"{debtor}@example.com",
        "creditor_id": creditor,
        "creditor_email": f"{creditor}@example.com",
        "share_amount": amount,
        "settled": 1 if settled else 0,
        "settled_at": None,
        "description": f"expense {expense_id}",
        "category": "food",
    }


MEMBERS = [{"user_id": u, "email": f"{u}@example.com"} for u in ("a", "b", "c")]


def test_payer_own_share_is_not_a_debt():
    debts = settlement.debts_from_rows([row(1, "a", "a", 10), row(1, "b", "a", 10)])
    assert [(d.debtor_id, d.creditor_id) for d in debts] == [("b", "a")]


def test_summary_splits_outstanding_and_settled():
    debts = settlement.debts_from_rows(
        [row(1, "b", "a", 10), row(2, "b", "c", 5, settled=True), row(3, "c", "a", 7)]
    )
    summaries = settlement.summarize_debts(debts)
    assert [s.debtor_id for s in summaries] == ["b", "c"]
    b = summaries[0]
    assert b.total_owed == Decimal("10.00")
    assert len(b.outstanding) == 1 and len(b.settled) == 1


def test_summarize_user_includes_amounts_owed_to_them():
    debts = settlement.debts_from_rows([row(1, "b", "a", 10), row(2, "a", "c", 4), row(3, "c", "a", 2, settled=True)])
    own, owed = settlement.summarize_user(debts, "a", "a@example.com")
    assert own.total_owed == Decimal("4.00")
    assert [d.debtor_id for d in owed] == ["b"]


def test_net_balances_sum_to_zero():
    debts = settlement.debts_from_rows(
        [row(1, "b", "a", "33.33"), row(1, "c", "a", "33.33"), row(2, "a", "b", 12), row(3, "c", "b", 5, settled=True)]
    )
    balances = settlement.net_balances(debts, MEMBERS)
    assert sum(b.net for b in balances) == Decimal("0")
    by_user = {b.user_id: b for b in balances}
    assert by_user["a"].net == Decimal("54.66")
    assert by_user["b"].net == Decimal("-21.33")
    assert by_user["c"].net == Decimal("-33.33")


def test_members_without_debts_still_listed():
    balances = settlement.net_balances([], MEMBERS)
    assert [(b.user_id, b.net) for b in balances] == [("a", 0), ("b", 0), ("c", 0)]


def test_pairwise_nets_both_directions():
    debts = settlement.debts_from_rows([row(1, "b", "a", 10), row(2, "a", "b", 4), row(3, "c", "a", 3)])
    pairs = settlement.pairwise_debts(debts)
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in pairs] == [
        ("b", "a", Decimal("6.00")),
        ("c", "a", Decimal("3.00")),
    ]


def test_pairwise_drops_fully_netted_pairs():
    debts = settlement.debts_from_rows([row(1, "b", "a", 5), row(2, "a", "b", 5)])
    assert settlement.pairwise_debts(debts) == []


def test_settlement_plan_clears_every_balance():
    balances = [
        settlement.Balance("a", "a@x", Decimal("50"), Decimal("0")),
        settlement.Balance("b", "b@x", Decimal("0"), Decimal("30")),
        settlement.Balance("c", "c@x", Decimal("10"), Decimal("0")),
        settlement.Balance("d", "d@x", Decimal("0"), Decimal("30")),
    ]
    plan = settlement.settlement_plan(balances)
    assert len(plan) <= len(balances) - 1
    net = {b.user_id: b.net for b in balances}
    for t in plan:
        net[t.from_user_id] += t.amount
        net[t.to_user_id] -= t.amount
    assert all(v == 0 for v in net.values())
    # largest debtor (tie b/d broken by id) pays the largest creditor first
    assert (plan[0].from_user_id, plan[0].to_user_id, plan[0].amount) == ("b", "a", Decimal("30"))


def _lookup(shares):
    return lambda expense_id, user_id: shares.get((expense_id, user_id))


def test_classify_settle_requests():
    shares = {
        (1, "b"): {"trip_id": 7, "paid_by": "a", "settled": 0},
        (2, "c"): {"trip_id": 7, "paid_by": "d", "settled": 0},
        (3, "b"): {"trip_id": 8, "paid_by": "a", "settled": 0},
        (4, "b"): {"trip_id": 7, "paid_by": "a", "settled": 1},
        (5, "a"): {"trip_id": 7, "paid_by": "a", "settled": 1},
    }
    entries = [
        {"expense_id": 1, "debtor_user_id": "b"},
        {"expense_id": 1, "debtor_user_id": "b"},
        {"expense_id": 2, "debtor_user_id": "c"},
        {"expense_id": 3, "debtor_user_id": "b"},
        {"expense_id": 4, "debtor_user_id": "b"},
        {"expense_id": 5, "debtor_user_id": "a"},
        {"expense_id": "x", "debtor_user_id": "b"},
        {"expense_id": True, "debtor_user_id": "b"},
        "garbage",
    ]
    result = settlement.classify_settle_requests(entries, 7, "a", _lookup(shares))
    assert result.to_settle == [(1, "b")]
    assert [r["expense_id"] for r in result.not_found] == [3, 4, 5]
    assert result.unauthorized == [{"expense_id": 2, "debtor_user_id": "c"}]
    assert len(result.poorly_formatted) == 3
