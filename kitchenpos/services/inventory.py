"""Lectura de inventario: productos, materia prima y recetas en una foto consistente."""
from __future__ import annotations

import asyncio
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List

from kitchenpos.core.errors import NotFound
from kitchenpos.core.schemas import Combo, MateriaPrima, Product, ProductMateriaPrima
from kitchenpos.services.store import (
    COMBOS,
    MATERIA_PRIMA,
    PRODUCT_MATERIA_PRIMA,
    PRODUCTS,
    KeyValueStore,
)


@dataclass
class InventorySnapshot:
    products: Dict[str, Product] = field(default_factory=dict)
    materials: Dict[str, MateriaPrima] = field(default_factory=dict)
    recipes: Dict[str, List[ProductMateriaPrima]] = field(default_factory=dict)

    def product(self, product_id: str) -> Product:
        try:
            return self.products[product_id]
        except KeyError:
            raise NotFound(f"Producto {product_id} no encontrado") from None

    def recipe(self, product_id: str) -> List[ProductMateriaPrima]:
        return self.recipes.get(product_id, [])

    def material_name(self, materia_prima_id: str) -> str | None:
        mp = self.materials.get(materia_prima_id)
        return mp.name if mp else None

    def removable_ingredients(self, product_id: str) -> List[str]:
        names = []
        for link in self.recipe(product_id):
            name = self.material_name(link.materia_prima_id)
            if link.removable and name:
                names.append(name)
        return names

    def available_units(self, product: Product) -> int:
        if not product.uses_materia_prima:
            return product.stock

        links = self.recipe(product.id)
        if not links:
            return 0
        units = math.inf
        for link in links:
            mp = self.materials.get(link.materia_prima_id)
            if mp is None:
                return 0
            if link.quantity <= 0:
                continue
            units = min(units, math.floor(mp.stock / link.quantity))
        return 0 if units == math.inf else int(units)


class InventoryService:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def snapshot(self) -> InventorySnapshot:
        # Lecturas en paralelo: sólo lectura, sin riesgo
        products, materials, links = await asyncio.gather(
            self.store.list(PRODUCTS),
            self.store.list(MATERIA_PRIMA),
            self.store.list(PRODUCT_MATERIA_PRIMA),
        )
        recipes: Dict[str, List[ProductMateriaPrima]] = defaultdict(list)
        for raw in links:
            link = ProductMateriaPrima(**raw)
            recipes[link.product_id].append(link)
        return InventorySnapshot(
            products={p["id"]: Product(**p) for p in products},
            materials={m["id"]: MateriaPrima(**m) for m in materials},
            recipes=dict(recipes),
        )

    async def get_product(self, product_id: str) -> Product:
        raw = await self.store.get(PRODUCTS, product_id)
        if raw is None:
            raise NotFound(f"Producto {product_id} no encontrado")
        return Product(**raw)

    async def get_combo(self, combo_id: str) -> Combo:
        raw = await self.store.get(COMBOS, combo_id)
        if raw is None:
            raise NotFound(f"Combo {combo_id} no encontrado")
        return Combo(**raw)

    async def list_combos(self) -> List[Combo]:
        combos = [Combo(**c) for c in await self.store.list(COMBOS)]
        return sorted(combos, key=lambda c: c.name)

    async def removable_ingredients(self, product_id: str) -> List[str]:
        return (await self.snapshot()).removable_ingredients(product_id)

    async def removable_by_product_name(self) -> Dict[str, List[str]]:
        """Para editar pedidos de cocina, que sólo conocen el nombre del producto."""
        snap = await self.snapshot()
        return {
            p.name: snap.removable_ingredients(p.id)
            for p in snap.products.values()
            if snap.removable_ingredients(p.id)
        }
