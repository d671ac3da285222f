from __future__ import annotations

import re
from typing import List, Optional

from kitchenpos.core.errors import NotFound
from kitchenpos.core.schemas import Sale, utc_now_iso
from kitchenpos.services.store import SALES, KeyValueStore

SALE_NUMBER_RE = re.compile(r"^S-(\d+)$")


def format_sale_number(n: int) -> str:
    return f"S-{n}"


class SalesService:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def list_sales(self) -> List[Sale]:
        sales = [Sale(**s) for s in await self.store.list(SALES)]
        return sorted(sales, key=lambda s: s.completed_at, reverse=True)

    async def get(self, sale_id: str) -> Sale:
        raw = await self.store.get(SALES, sale_id)
        if raw is None:
            raise NotFound(f"Venta {sale_id} no encontrada")
        return Sale(**raw)

    async def find_by_number(self, sale_number: str) -> Optional[Sale]:
        for raw in await self.store.list(SALES):
            if raw.get("sale_number") == sale_number:
                return Sale(**raw)
        return None

    async def next_sale_number(self) -> int:
        """Máximo número S-<n> en el historial + 1; ignora formatos ajenos."""
        last = 0
        for raw in await self.store.list(SALES):
            m = SALE_NUMBER_RE.match(str(raw.get("sale_number", "")))
            if m:
                last = max(last, int(m.group(1)))
        return last + 1

    async def save(self, sale: Sale) -> Sale:
        await self.store.put(SALES, sale.model_dump())
        return sale

    async def update(self, sale_id: str, **changes) -> Sale:
        sale = await self.get(sale_id)
        updated = sale.model_copy(update=changes)
        await self.store.put(SALES, updated.model_dump())
        return updated

    async def mark_delivered(self, sale_number: str) -> Optional[Sale]:
        sale = await self.find_by_number(sale_number)
        if sale is None:
            return None
        return await self.update(sale.id, delivered_at=utc_now_iso())
