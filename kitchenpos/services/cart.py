"""
Carrito de la venta en curso.

Las líneas se agrupan por firma (producto + ingredientes quitados, o combo +
selección completa). Toda validación de stock se hace sobre el carrito
prospectivo completo; si falla, el carrito queda como estaba.
"""
from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
from uuid import uuid4

from kitchenpos.core.errors import InsufficientStock, InvalidSelection, NotFound
from kitchenpos.core.schemas import AppSettings, ChangeEntry, Combo, ComboSelection, Product
from kitchenpos.services.combo_pricing import ComboPricer
from kitchenpos.services.inventory import InventoryService, InventorySnapshot
from kitchenpos.services.lines import CartLine, ComboItem, SimpleItem
from kitchenpos.services.stock_plan import plan_deductions

logger = logging.getLogger(__name__)


@dataclass
class OrderDetails:
    order_type: str = "pickup"  # pickup | delivery
    customer_name: str = ""
    delivery_address: str = ""
    scheduled_time: str = ""  # HH:MM, vacío = lo antes posible


@dataclass
class PaymentState:
    shown: bool = False
    method: str = "cash"
    cash_received: int = 0
    bill_history: List[int] = field(default_factory=list)
    change_breakdown: Optional[List[ChangeEntry]] = None

    def reset_cash(self) -> None:
        self.cash_received = 0
        self.bill_history = []
        self.change_breakdown = None

    def reset(self) -> None:
        self.shown = False
        self.method = "cash"
        self.reset_cash()


@dataclass
class CartTotals:
    subtotal: int
    delivery_charge: int
    total: int


class Cart:
    def __init__(self, inventory: InventoryService, pricer: ComboPricer):
        self.inventory = inventory
        self.pricer = pricer
        self.lines: List[CartLine] = []
        self.payment = PaymentState()
        self.details = OrderDetails()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def get(self, line_id: str) -> CartLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise NotFound(f"Línea {line_id} no está en el carrito")

    def _find_by_signature(self, signature: tuple) -> Optional[CartLine]:
        return next((l for l in self.lines if l.item.signature == signature), None)

    # ---------- validación ----------
    def _ensure_stock(self, prospective: Iterable[CartLine], snapshot: InventorySnapshot) -> None:
        missing = plan_deductions(prospective, snapshot).shortages(snapshot)
        if missing:
            raise InsufficientStock(f"Stock insuficiente: {', '.join(sorted(set(missing)))}")

    def _with_quantity(self, target: CartLine, quantity: int) -> List[CartLine]:
        return [dataclasses.replace(l, quantity=quantity) if l is target else l for l in self.lines]

    @staticmethod
    def _check_removable(product_id: str, removed: Iterable[str], snapshot: InventorySnapshot) -> None:
        allowed = set(snapshot.removable_ingredients(product_id))
        extra = set(removed) - allowed
        if extra:
            raise InvalidSelection(f"Ingredientes no removibles: {', '.join(sorted(extra))}")

    # ---------- operaciones ----------
    async def add_line(self, product: Product, removed_ingredients: Sequence[str] = ()) -> CartLine:
        snapshot = await self.inventory.snapshot()
        current = snapshot.products.get(product.id, product)
        self._check_removable(product.id, removed_ingredients, snapshot)

        item = SimpleItem(product=product, removed_ingredients=tuple(sorted(set(removed_ingredients))))
        existing = self._find_by_signature(item.signature)
        new_quantity = existing.quantity + 1 if existing else 1

        if new_quantity > snapshot.available_units(current):
            raise InsufficientStock()

        if existing:
            prospective = self._with_quantity(existing, new_quantity)
        else:
            line = CartLine(id=str(uuid4()), item=item, unit_price=product.price)
            prospective = self.lines + [line]
        self._ensure_stock(prospective, snapshot)

        if existing:
            existing.quantity = new_quantity
            return existing
        self.lines.append(line)
        return line

    async def add_combo(self, combo: Combo, selections: Sequence[ComboSelection]) -> CartLine:
        slots = {s.id: s for s in combo.slots}
        snapshot = await self.inventory.snapshot()
        for sel in selections:
            slot = slots.get(sel.slot_id)
            if slot is None:
                raise InvalidSelection(f"Slot {sel.slot_id} no pertenece a {combo.name}")
            if sel.product_id not in slot.product_ids and sel.product_id != slot.default_product_id:
                raise InvalidSelection(f"{sel.product_name} no es una opción de {slot.name}")
            self._check_removable(sel.product_id, sel.removed_ingredients, snapshot)

        filled = Counter(sel.slot_id for sel in selections)
        for slot in combo.slots:
            if filled[slot.id] != slot.quantity:
                raise InvalidSelection(
                    f"{slot.name} requiere {slot.quantity} selección(es), se recibieron {filled[slot.id]}"
                )

        item = ComboItem(combo=combo, selections=tuple(selections))
        existing = self._find_by_signature(item.signature)
        if existing:
            prospective = self._with_quantity(existing, existing.quantity + 1)
        else:
            price = await self.pricer.price(combo, selections)
            line = CartLine(id=f"combo_{uuid4().hex}", item=item, unit_price=price)
            prospective = self.lines + [line]
        self._ensure_stock(prospective, snapshot)

        if existing:
            existing.quantity += 1
            return existing
        self.lines.append(line)
        logger.info("Combo %s agregado", combo.name)
        return line

    def remove_line(self, line_id: str) -> None:
        line = self.get(line_id)
        self.lines.remove(line)
        if not self.lines:
            self.payment.reset()

    async def update_quantity(self, line_id: str, quantity: int) -> Optional[CartLine]:
        line = self.get(line_id)
        if quantity <= 0:
            self.remove_line(line_id)
            return None

        snapshot = await self.inventory.snapshot()
        if isinstance(line.item, SimpleItem):
            current = snapshot.products.get(line.item.product.id, line.item.product)
            if quantity > snapshot.available_units(current):
                raise InsufficientStock()
        self._ensure_stock(self._with_quantity(line, quantity), snapshot)

        line.quantity = quantity
        return line

    def clear(self) -> None:
        self.lines = []
        self.payment.reset()
        self.details = OrderDetails()

    # ---------- totales ----------
    def subtotal(self) -> int:
        return sum(l.unit_price * l.quantity for l in self.lines)

    def totals(self, app_settings: AppSettings) -> CartTotals:
        subtotal = self.subtotal()
        charge = 0
        if self.details.order_type == "delivery":
            threshold = app_settings.free_delivery_threshold
            if threshold <= 0 or subtotal < threshold:
                charge = app_settings.delivery_charge
        return CartTotals(subtotal=subtotal, delivery_charge=charge, total=subtotal + charge)
