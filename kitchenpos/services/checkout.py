"""
Cierre de venta.

BUILDING -> AWAITING_PAYMENT -> COMPLETING -> BUILDING (éxito)
                                           -> AWAITING_PAYMENT (falla)

El orden de los efectos es fijo: validar, persistir la venta, descontar
stock, registrar caja, avisar a cocina, limpiar el carrito.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from itertools import groupby
from typing import Dict, List, Optional, Sequence, get_args

from kitchenpos.core.config import Settings, settings as default_settings
from kitchenpos.core.errors import (
    ChangeNotRepresentable,
    CheckoutStateError,
    EmptyCart,
    InsufficientCash,
    InvalidSelection,
    KdsError,
    NotFound,
    SaleFailed,
)
from kitchenpos.core.schemas import (
    AppSettings,
    ComboSelection,
    KitchenOrder,
    PaymentMethod,
    Sale,
    SaleItem,
    new_id,
)
from kitchenpos.services.cart import Cart, CartTotals, OrderDetails
from kitchenpos.services.cash_drawer import CashDrawer
from kitchenpos.services.change import breakdown_counts, calculate_optimal_change, count_bills
from kitchenpos.services.inventory import InventoryService, InventorySnapshot
from kitchenpos.services.kds import KitchenSync
from kitchenpos.services.lines import SimpleItem
from kitchenpos.services.sales import SalesService, format_sale_number
from kitchenpos.services.stock_plan import AppliedPlan, apply_plan, plan_deductions
from kitchenpos.services.store import KeyValueStore
from kitchenpos.utils.schedule import resolve_scheduled_time, to_hhmm

logger = logging.getLogger(__name__)

PAYMENT_METHODS = get_args(PaymentMethod)


class CheckoutState(str, enum.Enum):
    BUILDING = "building"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETING = "completing"


@dataclass
class SaleResult:
    sale: Sale
    stock: AppliedPlan
    kds_notified: bool
    superseded_order_id: Optional[str] = None


@dataclass
class EditSession:
    order_id: str
    sale_number: str


class SaleFinalizer:
    def __init__(
        self,
        cart: Cart,
        sales: SalesService,
        inventory: InventoryService,
        store: KeyValueStore,
        cash_drawer: CashDrawer,
        kitchen: KitchenSync,
        app_settings: AppSettings,
        config: Settings = default_settings,
    ):
        self.cart = cart
        self.sales = sales
        self.inventory = inventory
        self.store = store
        self.cash_drawer = cash_drawer
        self.kitchen = kitchen
        self.app_settings = app_settings
        self.config = config

        self.state = CheckoutState.BUILDING
        self.next_sale_number = 1
        self.editing: Optional[EditSession] = None
        self._available: Optional[Dict[int, int]] = None

    @property
    def payment(self):
        return self.cart.payment

    def configure(self, app_settings: AppSettings) -> None:
        self.app_settings = app_settings

    def totals(self) -> CartTotals:
        return self.cart.totals(self.app_settings)

    async def load_next_sale_number(self) -> int:
        self.next_sale_number = await self.sales.next_sale_number()
        return self.next_sale_number

    def _require(self, *states: CheckoutState) -> None:
        if self.state not in states:
            raise CheckoutStateError(f"Operación no permitida en estado {self.state.value}")

    # ---------- pago ----------
    async def begin_payment(self) -> None:
        self._require(CheckoutState.BUILDING, CheckoutState.AWAITING_PAYMENT)
        if self.cart.is_empty:
            raise EmptyCart()
        self._available = await self.cash_drawer.bills() if self.config.use_drawer_limits else None
        self.state = CheckoutState.AWAITING_PAYMENT
        self.payment.shown = True
        self._recompute()

    def select_method(self, method: str) -> None:
        self._require(CheckoutState.AWAITING_PAYMENT)
        if method not in PAYMENT_METHODS:
            raise InvalidSelection(f"Medio de pago inválido: {method}")
        self.payment.method = method
        if method != "cash":
            self.payment.reset_cash()
        self._recompute()

    def add_cash(self, bill: int) -> None:
        self._require(CheckoutState.AWAITING_PAYMENT)
        if bill not in self.cash_drawer.denominations:
            raise InvalidSelection(f"Billete inválido: {bill}")
        self.payment.bill_history.append(bill)
        self.payment.cash_received += bill
        self._recompute()

    def undo_last_bill(self) -> None:
        self._require(CheckoutState.AWAITING_PAYMENT)
        if not self.payment.bill_history:
            return
        bill = self.payment.bill_history.pop()
        self.payment.cash_received -= bill
        self._recompute()

    def reset_cash(self) -> None:
        self._require(CheckoutState.AWAITING_PAYMENT)
        self.payment.reset_cash()
        self._recompute()

    def cancel_payment(self) -> None:
        self._require(CheckoutState.AWAITING_PAYMENT)
        self.payment.reset()
        self.state = CheckoutState.BUILDING

    def change(self) -> int:
        return max(0, self.payment.cash_received - self.totals().total)

    def cart_changed(self) -> None:
        """El carrito cambió con el pago abierto: recalcular o volver a BUILDING."""
        if self.state != CheckoutState.AWAITING_PAYMENT:
            return
        if self.cart.is_empty:
            self.payment.reset()
            self.state = CheckoutState.BUILDING
            return
        self._recompute()

    def _recompute(self) -> None:
        total = self.totals().total
        if self.payment.method != "cash" or self.payment.cash_received < total:
            self.payment.change_breakdown = None
            return
        self.payment.change_breakdown = calculate_optimal_change(
            self.payment.cash_received - total,
            self.cash_drawer.denominations,
            available=self._available,
        )

    def _validate_payment(self) -> None:
        if self.payment.method != "cash":
            return
        total = self.totals().total
        if self.payment.cash_received < total:
            raise InsufficientCash(
                f"Recibido {self.payment.cash_received}, total {total}"
            )
        if self.change() > 0 and self.payment.change_breakdown is None:
            raise ChangeNotRepresentable()

    def can_complete(self) -> bool:
        if self.state != CheckoutState.AWAITING_PAYMENT or self.cart.is_empty:
            return False
        try:
            self._validate_payment()
        except (InsufficientCash, ChangeNotRepresentable):
            return False
        return True

    # ---------- cierre ----------
    async def complete_sale(self) -> SaleResult:
        self._require(CheckoutState.AWAITING_PAYMENT)
        if self.cart.is_empty:
            raise EmptyCart()
        self._validate_payment()
        scheduled = resolve_scheduled_time(self.cart.details.scheduled_time)
        return await self._finalize(self.payment.method, scheduled)

    async def send_without_payment(self) -> SaleResult:
        """Pedido a cocina sin cobrar; la venta queda `unpaid`."""
        self._require(CheckoutState.BUILDING, CheckoutState.AWAITING_PAYMENT)
        if self.cart.is_empty:
            raise EmptyCart()
        scheduled = resolve_scheduled_time(self.cart.details.scheduled_time)
        return await self._finalize("unpaid", scheduled)

    async def _finalize(self, method: str, scheduled: Optional[str]) -> SaleResult:
        previous = self.state
        self.state = CheckoutState.COMPLETING
        try:
            result = await self._commit(method, scheduled)
        except Exception as exc:
            logger.exception("Error al completar la venta")
            self.state = (
                CheckoutState.AWAITING_PAYMENT
                if previous == CheckoutState.AWAITING_PAYMENT
                else CheckoutState.BUILDING
            )
            raise SaleFailed() from exc

        self.cart.clear()
        self.editing = None
        self._available = None
        self.state = CheckoutState.BUILDING
        # Optimista: la numeración real sale del historial al cargar
        self.next_sale_number += 1
        return result

    async def _commit(self, method: str, scheduled: Optional[str]) -> SaleResult:
        snapshot = await self.inventory.snapshot()
        totals = self.totals()
        details = self.cart.details
        is_cash = method == "cash"
        breakdown = self.payment.change_breakdown or []

        sale = Sale(
            sale_number=format_sale_number(self.next_sale_number),
            items=self._sale_items(snapshot),
            subtotal=totals.subtotal,
            delivery_charge=totals.delivery_charge,
            total_amount=totals.total,
            payment_method=method,
            cash_received=self.payment.cash_received if is_cash else None,
            change_given=self.change() if is_cash else None,
            bills_received=count_bills(self.payment.bill_history) if is_cash else None,
            bills_change=breakdown_counts(breakdown) if is_cash else None,
            scheduled_time=scheduled,
            customer_name=details.customer_name or None,
            order_type=details.order_type,
            delivery_address=(details.delivery_address or None) if details.order_type == "delivery" else None,
        )
        await self.sales.save(sale)

        applied = await apply_plan(plan_deductions(self.cart.lines, snapshot), self.store)

        if is_cash:
            await self.cash_drawer.receive(self.payment.bill_history, sale.id)
            await self.cash_drawer.give_change(breakdown, sale.id)

        kds_notified = await self.kitchen.push_sale(sale)

        superseded = None
        if self.editing:
            superseded = self.editing.order_id
            try:
                await self.kitchen.supersede(superseded)
            except KdsError as e:
                logger.error("No se pudo cerrar el pedido %s editado: %s", self.editing.sale_number, e)

        logger.info("Venta %s completada: %s (%s)", sale.sale_number, sale.total_amount, method)
        return SaleResult(sale=sale, stock=applied, kds_notified=kds_notified, superseded_order_id=superseded)

    def _sale_items(self, snapshot: InventorySnapshot) -> List[SaleItem]:
        items: List[SaleItem] = []
        for line in self.cart.lines:
            if isinstance(line.item, SimpleItem):
                product = line.item.product
                items.append(
                    SaleItem(
                        product_id=product.id,
                        product_name=product.name,
                        product_price=line.unit_price,
                        production_cost=product.production_cost,
                        quantity=line.quantity,
                        subtotal=line.subtotal,
                        category=product.category,
                        removed_ingredients=list(line.item.removed_ingredients),
                    )
                )
                continue

            # Un combo se expande en sus productos, una instancia por unidad
            combo = line.item.combo
            for _ in range(line.quantity):
                instance_id = new_id()
                for index, sel in enumerate(line.item.selections):
                    product = snapshot.products.get(sel.product_id)
                    items.append(
                        SaleItem(
                            product_id=sel.product_id,
                            product_name=sel.product_name,
                            product_price=sel.product_price,
                            production_cost=product.production_cost if product else 0.0,
                            quantity=1,
                            subtotal=sel.product_price,
                            category=product.category if product else "",
                            removed_ingredients=list(sel.removed_ingredients),
                            combo_name=combo.name,
                            combo_instance_id=instance_id,
                            combo_slot_index=index,
                        )
                    )
        return items

    # ---------- edición de pedidos de cocina ----------
    async def begin_order_edit(self, order: KitchenOrder) -> None:
        """Carga un pedido de cocina en el carrito; al cobrar reemplaza al original."""
        self._require(CheckoutState.BUILDING)
        self.cart.clear()
        try:
            await self._rebuild_cart(order)
        except Exception:
            self.cart.clear()
            raise

        self.cart.details = OrderDetails(
            order_type=order.order_type or "pickup",
            customer_name=order.customer_name or "",
            delivery_address=order.delivery_address or "",
            scheduled_time=to_hhmm(order.scheduled_time),
        )
        self.editing = EditSession(order_id=order.id, sale_number=order.sale_number)
        logger.info("Editando pedido %s", order.sale_number)

    def cancel_edit(self) -> None:
        self._require(CheckoutState.BUILDING, CheckoutState.AWAITING_PAYMENT)
        self.editing = None
        self.cart.clear()
        self.state = CheckoutState.BUILDING

    async def _rebuild_cart(self, order: KitchenOrder) -> None:
        snapshot = await self.inventory.snapshot()
        by_name = {p.name: p for p in snapshot.products.values()}
        combos = {c.name: c for c in await self.inventory.list_combos()}

        def product_named(name: str):
            try:
                return by_name[name]
            except KeyError:
                raise NotFound(f"Producto {name} no encontrado") from None

        for combo_name, group in groupby(order.items, key=lambda i: i.combo_name):
            group = list(group)
            if combo_name is None:
                for it in group:
                    line = await self.cart.add_line(product_named(it.product_name), it.removed_ingredients)
                    if it.quantity > 1:
                        await self.cart.update_quantity(line.id, line.quantity + it.quantity - 1)
                continue

            combo = combos.get(combo_name)
            if combo is None:
                raise NotFound(f"Combo {combo_name} no encontrado")
            positions = [slot for slot in combo.slots for _ in range(slot.quantity)]
            if not positions:
                continue
            # Los items del combo vienen aplanados: se agrupan por instancia
            for start in range(0, len(group), len(positions)):
                chunk = group[start:start + len(positions)]
                selections = [
                    ComboSelection(
                        slot_id=slot.id,
                        slot_name=slot.name,
                        product_id=product_named(it.product_name).id,
                        product_name=it.product_name,
                        product_price=it.product_price,
                        removed_ingredients=list(it.removed_ingredients),
                    )
                    for slot, it in zip(positions, chunk)
                ]
                await self.cart.add_combo(combo, selections)


async def mark_sale_paid(
    sales: SalesService,
    drawer: CashDrawer,
    sale_id: str,
    method: str,
    bills: Sequence[int] = (),
    available: Optional[Dict[int, int]] = None,
) -> Sale:
    """Cobra una venta enviada sin pago, repitiendo el cálculo de cambio."""
    sale = await sales.get(sale_id)
    if sale.payment_method != "unpaid":
        raise CheckoutStateError(f"La venta {sale.sale_number} ya está cobrada")
    if method not in PAYMENT_METHODS or method == "unpaid":
        raise InvalidSelection(f"Medio de pago inválido: {method}")

    changes = {"payment_method": method}
    if method == "cash":
        received = sum(bills)
        if received < sale.total_amount:
            raise InsufficientCash(f"Recibido {received}, total {sale.total_amount}")
        change = received - sale.total_amount
        breakdown = calculate_optimal_change(change, drawer.denominations, available=available)
        if breakdown is None:
            raise ChangeNotRepresentable()
        changes.update(
            cash_received=received,
            change_given=change,
            bills_received=count_bills(bills),
            bills_change=breakdown_counts(breakdown),
        )
        updated = await sales.update(sale.id, **changes)
        await drawer.receive(bills, sale.id)
        await drawer.give_change(breakdown, sale.id)
    else:
        updated = await sales.update(sale.id, **changes)

    logger.info("Venta %s cobrada (%s)", sale.sale_number, method)
    return updated
