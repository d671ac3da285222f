import os

# Base en memoria para que importar kitchenpos.main no cree archivos
os.environ.setdefault("DATABASE_URL", "sqlite://")

import asyncio

import pytest
import requests

from kitchenpos.core.config import settings
from kitchenpos.core.schemas import (
    AppSettings,
    Combo,
    ComboSlot,
    MateriaPrima,
    Product,
    ProductMateriaPrima,
)
from kitchenpos.services.store import (
    APP_SETTINGS,
    COMBOS,
    MATERIA_PRIMA,
    PRODUCT_MATERIA_PRIMA,
    PRODUCTS,
    MemoryStore,
)
from kitchenpos.services.terminal import PosTerminal

KDS_URL = "http://kds.local:4000"

# ---------- catálogo ----------
BURGER = Product(id="p-burger", name="Burger", price=1000, category="burgers", uses_materia_prima=True, production_cost=400)
FRIES = Product(id="p-fries", name="Fries", price=500, category="sides", stock=50, production_cost=150)
COLA = Product(id="p-cola", name="Cola", price=300, category="drinks", uses_materia_prima=True, production_cost=90)

MATERIALS = [
    MateriaPrima(id="mp-bun", name="bun", stock=20),
    MateriaPrima(id="mp-patty", name="patty", stock=20),
    MateriaPrima(id="mp-pickles", name="pickles", stock=30),
    MateriaPrima(id="mp-syrup", name="syrup", stock=5.0, unit="l"),
    MateriaPrima(id="mp-cup", name="cup", stock=20),
]

RECIPES = [
    ProductMateriaPrima(id="r-1", product_id="p-burger", materia_prima_id="mp-bun", quantity=1),
    ProductMateriaPrima(id="r-2", product_id="p-burger", materia_prima_id="mp-patty", quantity=1),
    ProductMateriaPrima(id="r-3", product_id="p-burger", materia_prima_id="mp-pickles", quantity=2, removable=True),
    ProductMateriaPrima(id="r-4", product_id="p-cola", materia_prima_id="mp-syrup", quantity=0.25),
    ProductMateriaPrima(id="r-5", product_id="p-cola", materia_prima_id="mp-cup", quantity=1),
]

LUNCH_SET = Combo(
    id="c-lunch",
    name="Lunch Set",
    slots=[
        ComboSlot(id="s-main", name="Main", product_ids=["p-burger"], default_product_id="p-burger"),
        ComboSlot(id="s-drink", name="Drink", product_ids=["p-cola"], default_product_id="p-cola"),
    ],
    price_type="fixed",
    fixed_price=1200,
)

DUO = Combo(
    id="c-duo",
    name="Duo",
    slots=[
        ComboSlot(id="s-burger", name="Burger", product_ids=["p-burger"], default_product_id="p-burger"),
        ComboSlot(id="s-side", name="Side", product_ids=["p-fries", "p-cola"], default_product_id="p-fries"),
    ],
    price_type="calculated",
    discount_type="percentage",
    discount_value=10,
)


async def seed(store, app_settings=None):
    await store.put_many(PRODUCTS, [p.model_dump() for p in (BURGER, FRIES, COLA)])
    await store.put_many(MATERIA_PRIMA, [m.model_dump() for m in MATERIALS])
    await store.put_many(PRODUCT_MATERIA_PRIMA, [r.model_dump() for r in RECIPES])
    await store.put_many(COMBOS, [LUNCH_SET.model_dump(), DUO.model_dump()])
    if app_settings is not None:
        await store.put(APP_SETTINGS, app_settings.model_dump())


# ---------- dobles del KDS ----------
class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("sin cuerpo")
        return self._payload


class FakeKdsSession:
    """Imita requests.Session.request y registra cada llamada."""

    def __init__(self):
        self.calls = []
        self.orders = []
        self.status = {}
        self.down = False

    def request(self, method, url, json=None, params=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "params": params, "timeout": timeout})
        if self.down:
            raise requests.ConnectionError("KDS caído")
        code = self.status.get(method, 200)
        if method == "GET":
            return FakeResponse(code, {"orders": self.orders})
        if method == "POST":
            return FakeResponse(code, {"id": f"k-{len(self.calls)}"})
        return FakeResponse(code, {})

    def calls_for(self, method):
        return [c for c in self.calls if c["method"] == method]


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._stream()

    async def _stream(self):
        for m in self.messages:
            yield m
        # Queda abierto hasta que cierren el panel
        await asyncio.Event().wait()


class FakeConnector:
    """Reemplaza websockets.connect; cada intento consume una entrada del guion."""

    def __init__(self, *script):
        self.script = list(script)
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        step = self.script.pop(0) if self.script else []
        if isinstance(step, Exception):
            raise step
        return FakeSocket(step)


# ---------- fixtures ----------
@pytest.fixture
def config():
    return settings.model_copy(
        update={
            "kds_poll_seconds": 60.0,
            "kds_reconnect_seconds": 0.01,
            "kds_completed_removal_seconds": 0.05,
            "kds_event_removal_seconds": 0.01,
            "use_drawer_limits": False,
        }
    )


@pytest.fixture
def store():
    s = MemoryStore()
    asyncio.run(seed(s))
    return s


@pytest.fixture
def kds_store():
    s = MemoryStore()
    asyncio.run(seed(s, AppSettings(kds_enabled=True, kds_url=KDS_URL)))
    return s


@pytest.fixture
def http():
    return FakeKdsSession()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def terminal(store, config, http, connector):
    t = PosTerminal(store, config, http=http, connect=connector)
    asyncio.run(t.start())
    return t


@pytest.fixture
def kds_terminal(kds_store, config, http, connector):
    t = PosTerminal(kds_store, config, http=http, connect=connector)
    asyncio.run(t.start())
    return t
