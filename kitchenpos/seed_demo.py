import asyncio
import logging

from .core.logconfig import configure_logging
from .core.schemas import (
    AppSettings,
    Combo,
    ComboSlot,
    MateriaPrima,
    Product,
    ProductMateriaPrima,
)
from .db import SessionLocal, init_db
from .services.cash_drawer import CashDrawer
from .services.store import (
    APP_SETTINGS,
    COMBOS,
    MATERIA_PRIMA,
    PRODUCT_MATERIA_PRIMA,
    PRODUCTS,
    KeyValueStore,
    SqlStore,
)

logger = logging.getLogger(__name__)

PRODUCTS_DEMO = [
    Product(id="demo-burger", name="Hamburguesa", price=4500, category="hamburguesas", uses_materia_prima=True, production_cost=1800),
    Product(id="demo-fries", name="Papas fritas", price=2000, category="acompañamientos", stock=80, production_cost=600),
    Product(id="demo-soda", name="Gaseosa", price=1500, category="bebidas", stock=120, production_cost=500),
]

MATERIALS_DEMO = [
    MateriaPrima(id="demo-bun", name="pan", stock=60),
    MateriaPrima(id="demo-patty", name="medallón", stock=60),
    MateriaPrima(id="demo-cheese", name="queso", stock=120, unit="feta"),
    MateriaPrima(id="demo-pickles", name="pepinos", stock=300, unit="rodaja"),
]

RECIPES_DEMO = [
    ProductMateriaPrima(id="demo-r1", product_id="demo-burger", materia_prima_id="demo-bun", quantity=1),
    ProductMateriaPrima(id="demo-r2", product_id="demo-burger", materia_prima_id="demo-patty", quantity=1),
    ProductMateriaPrima(id="demo-r3", product_id="demo-burger", materia_prima_id="demo-cheese", quantity=2, removable=True),
    ProductMateriaPrima(id="demo-r4", product_id="demo-burger", materia_prima_id="demo-pickles", quantity=3, removable=True),
]

COMBOS_DEMO = [
    Combo(
        id="demo-combo",
        name="Combo clásico",
        slots=[
            ComboSlot(id="demo-slot-main", name="Principal", product_ids=["demo-burger"], default_product_id="demo-burger"),
            ComboSlot(id="demo-slot-side", name="Acompañamiento", product_ids=["demo-fries"], default_product_id="demo-fries"),
            ComboSlot(id="demo-slot-drink", name="Bebida", product_ids=["demo-soda"], default_product_id="demo-soda"),
        ],
        price_type="calculated",
        discount_type="percentage",
        discount_value=15,
    ),
]


async def get_or_create(store: KeyValueStore, kind: str, record) -> bool:
    if await store.get(kind, record.id) is not None:
        return False
    await store.put(kind, record.model_dump())
    return True


async def seed(store: KeyValueStore) -> int:
    created = 0
    for kind, records in (
        (PRODUCTS, PRODUCTS_DEMO),
        (MATERIA_PRIMA, MATERIALS_DEMO),
        (PRODUCT_MATERIA_PRIMA, RECIPES_DEMO),
        (COMBOS, COMBOS_DEMO),
        (APP_SETTINGS, [AppSettings(delivery_charge=1000, free_delivery_threshold=15000)]),
    ):
        for record in records:
            created += await get_or_create(store, kind, record)

    # Caja con todas las denominaciones en cero
    await CashDrawer(store).bills()
    return created


def main():
    configure_logging()
    init_db()
    created = asyncio.run(seed(SqlStore(SessionLocal)))
    logger.info("Seed OK: %s registros nuevos", created)


if __name__ == "__main__":
    main()
