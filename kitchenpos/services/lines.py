"""Líneas del carrito: un sobre común con un item simple o un combo."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

from kitchenpos.core.schemas import Combo, ComboSelection, Product


@dataclass(frozen=True)
class SimpleItem:
    product: Product
    removed_ingredients: Tuple[str, ...] = ()

    @property
    def signature(self) -> tuple:
        return ("product", self.product.id, tuple(sorted(self.removed_ingredients)))

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def category(self) -> str:
        return self.product.category


@dataclass(frozen=True)
class ComboItem:
    combo: Combo
    selections: Tuple[ComboSelection, ...] = field(default_factory=tuple)

    @property
    def signature(self) -> tuple:
        return (
            "combo",
            self.combo.id,
            tuple(
                (s.slot_id, s.product_id, tuple(sorted(s.removed_ingredients)))
                for s in self.selections
            ),
        )

    @property
    def name(self) -> str:
        return self.combo.name

    @property
    def category(self) -> str:
        return "combos"


LineItem = Union[SimpleItem, ComboItem]


@dataclass
class CartLine:
    id: str
    item: LineItem
    unit_price: int
    quantity: int = 1

    @property
    def is_combo(self) -> bool:
        return isinstance(self.item, ComboItem)

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    def as_dict(self) -> dict:
        data = {
            "id": self.id,
            "kind": "combo" if self.is_combo else "product",
            "name": self.item.name,
            "category": self.item.category,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }
        if isinstance(self.item, ComboItem):
            data["combo_id"] = self.item.combo.id
            data["selections"] = [s.model_dump() for s in self.item.selections]
        else:
            data["product_id"] = self.item.product.id
            data["removed_ingredients"] = sorted(self.item.removed_ingredients)
        return data
