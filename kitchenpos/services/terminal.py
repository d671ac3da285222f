"""Una terminal de venta: carrito, cierre, caja y cocina sobre un mismo store."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests
import websockets
from fastapi import Request

from kitchenpos.core.config import Settings, settings as default_settings
from kitchenpos.core.schemas import AppSettings
from kitchenpos.services.cart import Cart
from kitchenpos.services.cash_drawer import CashDrawer
from kitchenpos.services.checkout import SaleFinalizer
from kitchenpos.services.combo_pricing import ComboPricer
from kitchenpos.services.inventory import InventoryService
from kitchenpos.services.kds import KdsClient, KitchenSync
from kitchenpos.services.sales import SalesService
from kitchenpos.services.store import APP_SETTINGS, KeyValueStore

logger = logging.getLogger(__name__)


class PosTerminal:
    def __init__(
        self,
        store: KeyValueStore,
        config: Settings = default_settings,
        http: Optional[requests.Session] = None,
        connect=websockets.connect,
    ):
        self.store = store
        self.config = config
        self.app_settings = AppSettings()
        # Serializa las operaciones de la terminal (un operador, una venta a la vez)
        self.lock = asyncio.Lock()

        self.inventory = InventoryService(store)
        self.pricer = ComboPricer(store)
        self.sales = SalesService(store)
        self.cash_drawer = CashDrawer(store)
        self.cart = Cart(self.inventory, self.pricer)
        self.kds = KdsClient(self.app_settings, session=http, timeout=config.kds_http_timeout)
        self.kitchen = KitchenSync(self.kds, self.sales, config, connect=connect)
        self.checkout = SaleFinalizer(
            self.cart,
            self.sales,
            self.inventory,
            store,
            self.cash_drawer,
            self.kitchen,
            self.app_settings,
            config,
        )

    async def reload_settings(self) -> AppSettings:
        raw = await self.store.get(APP_SETTINGS, "default")
        self.app_settings = AppSettings(**raw) if raw else AppSettings()
        self.kds.configure(self.app_settings)
        self.checkout.configure(self.app_settings)
        logger.info("Configuración recargada (KDS %s)", "activo" if self.kds.enabled else "inactivo")
        return self.app_settings

    async def start(self) -> None:
        await self.reload_settings()
        await self.checkout.load_next_sale_number()

    async def shutdown(self) -> None:
        await self.kitchen.close_panel()


def get_terminal(request: Request) -> PosTerminal:
    return request.app.state.terminal
