import pytest

from kitchenpos.core.schemas import ChangeEntry
from kitchenpos.services.change import (
    BILL_DENOMINATIONS,
    breakdown_counts,
    calculate_optimal_change,
    count_bills,
)


def _min_bills_table(amount, denominations):
    """Mínima cantidad de billetes para 0..amount por programación dinámica (None si no hay)."""
    best = [0] + [None] * amount
    for a in range(1, amount + 1):
        for d in denominations:
            if d <= a and best[a - d] is not None:
                cand = best[a - d] + 1
                if best[a] is None or cand < best[a]:
                    best[a] = cand
    return best


def test_zero_or_negative_returns_empty():
    assert calculate_optimal_change(0) == []
    assert calculate_optimal_change(-50) == []


def test_single_bill():
    assert calculate_optimal_change(500) == [ChangeEntry(value=500, count=1)]


def test_mixed_breakdown_descending():
    out = calculate_optimal_change(23780)
    assert [(e.value, e.count) for e in out] == [
        (20000, 1),
        (2000, 1),
        (1000, 1),
        (500, 1),
        (200, 1),
        (50, 1),
        (20, 1),
        (10, 1),
    ]


@pytest.mark.parametrize("amount", [5, 37, 1001, 15])
def test_unrepresentable_is_none(amount):
    assert calculate_optimal_change(amount) is None


def test_sum_and_counts_hold_for_every_multiple_of_ten():
    for amount in range(0, 40010, 10):
        out = calculate_optimal_change(amount)
        assert out is not None
        assert sum(e.value * e.count for e in out) == amount
        assert all(e.count >= 1 for e in out)


def test_greedy_is_optimal_for_bill_set():
    # Greedy no es óptimo en general; sí lo es para estos billetes
    table = _min_bills_table(4200, [d // 10 for d in BILL_DENOMINATIONS])
    for amount in range(10, 42010, 10):
        greedy = sum(e.count for e in calculate_optimal_change(amount))
        assert greedy == table[amount // 10]


def test_greedy_fails_on_non_canonical_set():
    # Con {40, 30, 10}, 60 = 30 + 30 pero greedy da 40 + 10 + 10
    out = calculate_optimal_change(60, denominations=(40, 30, 10))
    assert sum(e.count for e in out) == 3
    assert _min_bills_table(60, (40, 30, 10))[60] == 2


def test_available_caps_each_bill():
    out = calculate_optimal_change(1000, available={1000: 0, 500: 1, 200: 5, 100: 3})
    assert [(e.value, e.count) for e in out] == [(500, 1), (200, 2), (100, 1)]


def test_available_without_bills_is_none():
    assert calculate_optimal_change(500, available={}) is None


def test_available_falls_back_to_smaller_bills():
    out = calculate_optimal_change(1000, available={1000: 0, 500: 2})
    assert [(e.value, e.count) for e in out] == [(500, 2)]


def test_count_helpers():
    assert count_bills([2000, 1000, 1000]) == {"2000": 1, "1000": 2}
    assert breakdown_counts([ChangeEntry(value=500, count=1)]) == {"500": 1}
