"""
Plan de descuento de stock.

Primero se agrega todo lo que el carrito consume (producto terminado y materia
prima), después se escribe una sola vez por registro afectado.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from kitchenpos.core.schemas import Product, utc_now_iso
from kitchenpos.services.inventory import InventorySnapshot
from kitchenpos.services.lines import CartLine, ComboItem
from kitchenpos.services.store import MATERIA_PRIMA, PRODUCTS, KeyValueStore

logger = logging.getLogger(__name__)

EPSILON = 1e-9


@dataclass
class StockPlan:
    products: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    materials: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    # Unidades de productos con receta; sólo para validar
    recipe_units: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def shortages(self, snapshot: InventorySnapshot) -> List[str]:
        """Nombres de productos o materias primas que no alcanzan."""
        missing = []
        for product_id, units in self.products.items():
            product = snapshot.products.get(product_id)
            if product is None or units > product.stock:
                missing.append(product.name if product else product_id)
        for product_id in self.recipe_units:
            links = snapshot.recipe(product_id)
            if not links or any(l.materia_prima_id not in snapshot.materials for l in links):
                product = snapshot.products.get(product_id)
                missing.append(product.name if product else product_id)
        for mp_id, needed in self.materials.items():
            mp = snapshot.materials.get(mp_id)
            if mp is None or needed > mp.stock + EPSILON:
                missing.append(mp.name if mp else mp_id)
        return missing


@dataclass
class AppliedPlan:
    products: Dict[str, int] = field(default_factory=dict)
    materials: Dict[str, float] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


def _consume(plan: StockPlan, product: Product, units: int, removed, snapshot: InventorySnapshot):
    if not product.uses_materia_prima:
        plan.products[product.id] += units
        return

    plan.recipe_units[product.id] += units
    for link in snapshot.recipe(product.id):
        name = snapshot.material_name(link.materia_prima_id)
        if name is not None and name in removed:
            continue
        plan.materials[link.materia_prima_id] += link.quantity * units


def plan_deductions(lines: Iterable[CartLine], snapshot: InventorySnapshot) -> StockPlan:
    plan = StockPlan()
    for line in lines:
        if isinstance(line.item, ComboItem):
            # Cada slot descuenta su producto por cada unidad del combo
            for sel in line.item.selections:
                product = snapshot.product(sel.product_id)
                _consume(plan, product, line.quantity, set(sel.removed_ingredients), snapshot)
        else:
            product = snapshot.products.get(line.item.product.id, line.item.product)
            _consume(plan, product, line.quantity, set(line.item.removed_ingredients), snapshot)
    return plan


async def apply_plan(plan: StockPlan, store: KeyValueStore) -> AppliedPlan:
    product_ids = [pid for pid, units in plan.products.items() if units]
    material_ids = [mid for mid, qty in plan.materials.items() if qty]

    # Fase de lectura completa antes de cualquier escritura
    reads = await asyncio.gather(
        *(store.get(PRODUCTS, pid) for pid in product_ids),
        *(store.get(MATERIA_PRIMA, mid) for mid in material_ids),
    )
    product_rows = reads[: len(product_ids)]
    material_rows = reads[len(product_ids):]

    now = utc_now_iso()
    applied = AppliedPlan()
    products_out = []
    for pid, row in zip(product_ids, product_rows):
        if row is None:
            continue
        units = plan.products[pid]
        row["stock"] = max(0, int(row.get("stock", 0)) - units)
        row["updated_at"] = now
        products_out.append(row)
        applied.products[pid] = units

    materials_out = []
    for mid, row in zip(material_ids, material_rows):
        if row is None:
            continue
        qty = plan.materials[mid]
        new_stock = float(row.get("stock", 0)) - qty
        if new_stock < -EPSILON:
            # TODO: definir política de faltante (backorder o rechazo de la venta)
            logger.warning(
                "Descuento omitido para %s: stock %s, requerido %s",
                row.get("name", mid), row.get("stock"), qty,
            )
            applied.skipped.append(row.get("name", mid))
            continue
        row["stock"] = round(max(new_stock, 0.0), 6)
        row["updated_at"] = now
        materials_out.append(row)
        applied.materials[mid] = qty

    if products_out:
        await store.put_many(PRODUCTS, products_out)
    if materials_out:
        await store.put_many(MATERIA_PRIMA, materials_out)
    return applied
