from decimal import Decimal

import pytest

from trip_planner.services.splitting import split_equally


def amounts(shares):
    return [s.amount for s in shares]


def test_even_split():
    shares = split_equally(90, ["a", "b", "c"])
    assert amounts(shares) == [Decimal("30.00")] * 3


def test_leftover_cents_go_to_payer_first():
    shares = split_equally(100, ["a", "b", "c"], payer_id="b")
    assert [s.user_id for s in shares] == ["b", "a", "c"]
    assert amounts(shares) == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
    assert sum(amounts(shares)) == Decimal("100.00")


def test_leftover_follows_given_order_without_payer():
    shares = split_equally("0.05", ["x", "y", "z"], payer_id="outsider")
    assert amounts(shares) == [Decimal("0.02"), Decimal("0.02"), Decimal("0.01")]


@pytest.mark.parametrize("amount,n", [(10, 3), (0.07, 4), (1234.57, 7), (99.99, 6)])
def test_shares_always_sum_to_amount(amount, n):
    shares = split_equally(amount, [f"u{i}" for i in range(n)])
    assert sum(amounts(shares)) == Decimal(str(amount)).quantize(Decimal("0.01"))
    assert max(amounts(shares)) - min(amounts(shares)) <= Decimal("0.01")


def test_duplicates_collapse():
    shares = split_equally(10, ["a", "a", "b"])
    assert [s.user_id for s in shares] == ["a", "b"]


def test_rejects_empty_and_non_positive():
    with pytest.raises(ValueError):
        split_equally(10, [])
    with pytest.raises(ValueError):
        split_equally(0, ["a"])
