"""Caja: billetes por denominación y registro de movimientos."""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from kitchenpos.core.schemas import CashDrawerBill, CashMovement, ChangeEntry, utc_now_iso
from kitchenpos.services.change import BILL_DENOMINATIONS
from kitchenpos.services.store import CASH_DRAWER, CASH_MOVEMENTS, KeyValueStore


def _bill_id(denomination: int) -> str:
    return f"bill-{denomination}"


class CashDrawer:
    def __init__(self, store: KeyValueStore, denominations: Sequence[int] = BILL_DENOMINATIONS):
        self.store = store
        self.denominations = tuple(denominations)

    async def _load(self) -> Dict[int, CashDrawerBill]:
        rows = {b.denomination: b for b in (CashDrawerBill(**r) for r in await self.store.list(CASH_DRAWER))}
        missing = [
            CashDrawerBill(id=_bill_id(d), denomination=d) for d in self.denominations if d not in rows
        ]
        if missing:
            await self.store.put_many(CASH_DRAWER, [b.model_dump() for b in missing])
            rows.update({b.denomination: b for b in missing})
        return rows

    async def bills(self) -> Dict[int, int]:
        return {d: b.quantity for d, b in (await self._load()).items()}

    async def total_cash(self) -> int:
        return sum(d * q for d, q in (await self.bills()).items())

    async def _log(self, movement_type: str, sale_id: Optional[str], bills_in=None, bills_out=None) -> None:
        mv = CashMovement(movement_type=movement_type, sale_id=sale_id, bills_in=bills_in, bills_out=bills_out)
        await self.store.put(CASH_MOVEMENTS, mv.model_dump())

    async def receive(self, bill_history: Iterable[int], sale_id: Optional[str] = None) -> Dict[str, int]:
        counts = Counter(bill_history)
        if not counts:
            return {}
        rows = await self._load()
        now = utc_now_iso()
        changed = []
        for value, n in counts.items():
            bill = rows.get(value) or CashDrawerBill(id=_bill_id(value), denomination=value)
            changed.append(bill.model_copy(update={"quantity": bill.quantity + n, "updated_at": now}))
        await self.store.put_many(CASH_DRAWER, [b.model_dump() for b in changed])

        received = {str(v): n for v, n in counts.items()}
        await self._log("sale" if sale_id else "manual_add", sale_id, bills_in=received)
        return received

    async def give_change(self, breakdown: List[ChangeEntry], sale_id: Optional[str] = None) -> None:
        if not breakdown:
            return
        rows = await self._load()
        now = utc_now_iso()
        changed = []
        for entry in breakdown:
            bill = rows.get(entry.value)
            # Si la caja no registra esos billetes no se descuenta
            if bill and bill.quantity >= entry.count:
                changed.append(bill.model_copy(update={"quantity": bill.quantity - entry.count, "updated_at": now}))
        if changed:
            await self.store.put_many(CASH_DRAWER, [b.model_dump() for b in changed])
        await self._log(
            "change_given" if sale_id else "manual_remove",
            sale_id,
            bills_out={str(e.value): e.count for e in breakdown},
        )

    async def movements(self, limit: int = 100) -> List[CashMovement]:
        rows = [CashMovement(**m) for m in await self.store.list(CASH_MOVEMENTS)]
        return sorted(rows, key=lambda m: m.created_at, reverse=True)[:limit]
