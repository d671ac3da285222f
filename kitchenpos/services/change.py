from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from kitchenpos.core.schemas import ChangeEntry

# Billetes en circulación, de mayor a menor
BILL_DENOMINATIONS = (20000, 10000, 2000, 1000, 500, 200, 100, 50, 20, 10)


def calculate_optimal_change(
    amount: int,
    denominations: Sequence[int] = BILL_DENOMINATIONS,
    available: Optional[Mapping[int, int]] = None,
) -> Optional[List[ChangeEntry]]:
    """
    Desglose greedy del cambio. Devuelve None si no se puede dar exacto.
    Con `available` cada billete se limita a lo que hay en la caja.
    Greedy sólo es óptimo para sistemas canónicos como BILL_DENOMINATIONS.
    """
    if amount <= 0:
        return []

    result: List[ChangeEntry] = []
    remaining = int(amount)
    for value in sorted(denominations, reverse=True):
        count = remaining // value
        if available is not None:
            count = min(count, int(available.get(value, 0)))
        if count > 0:
            result.append(ChangeEntry(value=value, count=count))
            remaining -= count * value
        if remaining == 0:
            break

    if remaining != 0:
        return None
    return result


def count_bills(bills: Iterable[int]) -> Dict[str, int]:
    """Historial de billetes recibidos -> {"<valor>": cantidad}."""
    return {str(v): n for v, n in Counter(bills).items()}


def breakdown_counts(breakdown: Iterable[ChangeEntry]) -> Dict[str, int]:
    return {str(b.value): b.count for b in breakdown}
