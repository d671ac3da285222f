from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence

from kitchenpos.core.schemas import Combo, ComboSelection, ComboSlot, Product
from kitchenpos.services.store import PRODUCTS, KeyValueStore


class ComboPricer:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def price(self, combo: Combo, selections: Sequence[ComboSelection]) -> int:
        if combo.price_type == "fixed":
            return combo.fixed_price or 0

        # Precio calculado: suma de productos menos descuento
        total = 0.0
        for sel in selections:
            raw = await self.store.get(PRODUCTS, sel.product_id)
            if raw:
                total += raw["price"]

        if combo.discount_type == "percentage" and combo.discount_value:
            total = total * (1 - combo.discount_value / 100)
        elif combo.discount_type == "fixed" and combo.discount_value:
            total = max(0.0, total - combo.discount_value)
        return int(Decimal(str(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    async def slot_products(self, slot: ComboSlot) -> List[Product]:
        products = []
        for product_id in slot.product_ids:
            raw = await self.store.get(PRODUCTS, product_id)
            if raw and raw.get("active", True):
                products.append(Product(**raw))
        return products

    async def default_selections(self, combo: Combo) -> List[ComboSelection]:
        selections = []
        for slot in combo.slots:
            raw = await self.store.get(PRODUCTS, slot.default_product_id)
            if not raw:
                continue
            product = Product(**raw)
            for _ in range(slot.quantity):
                selections.append(
                    ComboSelection(
                        slot_id=slot.id,
                        slot_name=slot.name,
                        product_id=product.id,
                        product_name=product.name,
                        product_price=product.price,
                    )
                )
        return selections
