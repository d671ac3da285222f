"""
Sincronización con el KDS (pantalla de cocina).

KdsClient habla HTTP con el KDS; OrderBoard mantiene la vista local ordenada
de pedidos pendientes; KdsSyncSession corre el polling y el canal de eventos
mientras el panel de cocina está abierto; KitchenSync agrupa las ediciones en
vivo que la terminal hace sobre los pedidos.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

import requests
import websockets
from websockets.exceptions import WebSocketException
from starlette.concurrency import run_in_threadpool

from kitchenpos.core.config import Settings, settings as default_settings
from kitchenpos.core.errors import InvalidStatusTransition, KdsError, NotFound
from kitchenpos.core.schemas import AppSettings, KitchenOrder, KitchenOrderItem, Sale, utc_now_iso
from kitchenpos.services.sales import SalesService
from kitchenpos.utils.schedule import resolve_scheduled_time

logger = logging.getLogger(__name__)

VISIBLE_STATUSES = ("pending", "on_delivery")

# Flujo de estados por tipo de pedido
STATUS_FLOW = {
    "pickup": {"pending": {"preparing", "completed"}, "preparing": {"completed"}},
    "delivery": {"pending": {"on_delivery"}, "on_delivery": {"completed"}},
}


def can_transition(order: KitchenOrder, status: str) -> bool:
    flow = STATUS_FLOW[order.order_type or "pickup"]
    return status in flow.get(order.status, set())


def _ts(value: Optional[str]) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def order_sort_key(order: KitchenOrder):
    # Sin horario primero (por llegada), después los programados por horario
    if not order.scheduled_time:
        return (0, _ts(order.created_at))
    return (1, _ts(order.scheduled_time))


def build_order_payload(sale: Sale) -> dict:
    return {
        "sale_number": sale.sale_number,
        "items": [
            {
                "product_name": it.product_name,
                "quantity": it.quantity,
                "product_price": it.product_price,
                "removed_ingredients": list(it.removed_ingredients),
                "combo_name": it.combo_name,
                "category": it.category or None,
            }
            for it in sale.items
        ],
        "total": sale.total_amount,
        "payment_method": sale.payment_method,
        "scheduled_time": sale.scheduled_time,
        "customer_name": sale.customer_name or None,
        "order_type": sale.order_type,
        "delivery_address": sale.delivery_address if sale.order_type == "delivery" else None,
        "created_at": sale.created_at,
    }


class KdsClient:
    def __init__(
        self,
        app_settings: AppSettings,
        session: Optional[requests.Session] = None,
        timeout: float = default_settings.kds_http_timeout,
    ):
        self.app_settings = app_settings
        self.session = session or requests.Session()
        self.timeout = timeout

    def configure(self, app_settings: AppSettings) -> None:
        self.app_settings = app_settings

    @property
    def enabled(self) -> bool:
        return bool(self.app_settings.kds_enabled and self.app_settings.kds_url)

    @property
    def base_url(self) -> str:
        return self.app_settings.kds_url.rstrip("/")

    @property
    def ws_url(self) -> str:
        return re.sub(r"^http", "ws", self.base_url)

    def _send(self, method: str, path: str, body=None, params=None):
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=body, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise KdsError(f"Error de conexión con KDS: {e}") from e
        if not r.ok:
            raise KdsError(f"KDS respondió {r.status_code} en {method} {path}")
        try:
            return r.json()
        except ValueError:
            return {}

    async def _request(self, method: str, path: str, body=None, params=None):
        return await run_in_threadpool(self._send, method, path, body, params)

    async def create_order(self, sale: Sale) -> Optional[dict]:
        if not self.enabled:
            return None
        return await self._request("POST", "/api/orders", body=build_order_payload(sale))

    async def fetch_orders(self) -> List[KitchenOrder]:
        if not self.enabled:
            return []
        data = await self._request("GET", "/api/orders", params={"status": ",".join(VISIBLE_STATUSES)})
        try:
            rows = data if isinstance(data, list) else data.get("orders") or []
            return [KitchenOrder(**o) for o in rows]
        except (ValueError, TypeError, AttributeError) as e:
            # ValidationError de pydantic es ValueError
            raise KdsError(f"Respuesta de KDS inválida: {e}") from e

    async def update_status(self, order_id: str, status: str) -> None:
        if not self.enabled:
            return
        await self._request("PATCH", f"/api/orders/{order_id}/status", body={"status": status})

    async def update_order(self, order_id: str, fields: dict) -> None:
        if not self.enabled:
            return
        await self._request("PUT", f"/api/orders/{order_id}", body=fields)


class OrderBoard:
    """Vista local de pedidos de cocina, indexada por id."""

    def __init__(self):
        self._orders: Dict[str, KitchenOrder] = {}
        self._removals: Dict[str, asyncio.TimerHandle] = {}

    @property
    def orders(self) -> List[KitchenOrder]:
        return sorted(self._orders.values(), key=order_sort_key)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def find(self, order_id: str) -> Optional[KitchenOrder]:
        return self._orders.get(order_id)

    def get(self, order_id: str) -> KitchenOrder:
        try:
            return self._orders[order_id]
        except KeyError:
            raise NotFound(f"Pedido {order_id} no está en cocina") from None

    def replace(self, orders: List[KitchenOrder]) -> None:
        self._orders = {o.id: o for o in orders if o.status in VISIBLE_STATUSES}

    def remove(self, order_id: str) -> None:
        self._orders.pop(order_id, None)
        handle = self._removals.pop(order_id, None)
        if handle:
            handle.cancel()

    def set_status(self, order_id: str, status: str) -> None:
        order = self._orders.get(order_id)
        if order is None:
            return
        finished_at = utc_now_iso() if status == "completed" else None
        self._orders[order_id] = order.model_copy(update={"status": status, "finished_at": finished_at})

    def schedule_removal(self, order_id: str, delay: float) -> None:
        if order_id in self._removals:
            return
        loop = asyncio.get_running_loop()
        self._removals[order_id] = loop.call_later(delay, self._expire, order_id)

    def _expire(self, order_id: str) -> None:
        self._removals.pop(order_id, None)
        self._orders.pop(order_id, None)

    def cancel_timers(self) -> None:
        for handle in self._removals.values():
            handle.cancel()
        self._removals.clear()

    def speculative(self, order_id: str, update: dict) -> Callable[[], None]:
        """Aplica `update` localmente y devuelve la función que lo revierte."""
        previous = self.get(order_id)
        self._orders[order_id] = previous.model_copy(update=update)

        def restore() -> None:
            if order_id in self._orders:
                self._orders[order_id] = previous

        return restore

    def apply_event(self, message: dict, removal_delay: float) -> None:
        kind = message.get("type")
        order_id = message.get("orderId") or message.get("order_id")

        if kind == "new_order":
            order = KitchenOrder(**message["order"])
            # Duplicados (polling + evento) se descartan
            if order.status in VISIBLE_STATUSES and order.id not in self._orders:
                self._orders[order.id] = order
        elif kind == "order_updated":
            if order_id in self._orders:
                self.set_status(order_id, message["status"])
                if message["status"] == "completed":
                    self.schedule_removal(order_id, removal_delay)
        elif kind == "order_full_update":
            order = KitchenOrder(**message["order"])
            current = self._orders.get(order.id)
            if current is not None:
                # El estado viaja por order_updated; acá sólo contenido
                self._orders[order.id] = order.model_copy(
                    update={"status": current.status, "finished_at": current.finished_at}
                )
        elif kind == "order_deleted":
            self.remove(order_id)
        else:
            logger.debug("Evento KDS ignorado: %s", kind)


class KdsSyncSession:
    """Polling + canal de eventos mientras el panel de cocina está abierto."""

    def __init__(
        self,
        client: KdsClient,
        board: OrderBoard,
        config: Settings = default_settings,
        connect=websockets.connect,
    ):
        self.client = client
        self.board = board
        self.config = config
        self._connect = connect
        self._open = False
        self._tasks: List[asyncio.Task] = []
        self.connection_status = "disconnected"
        self.last_error: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        if self._open or not self.client.enabled:
            return
        await self.refresh()
        # Las tareas arrancan en el próximo await; _open ya es True para entonces
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name="kds-poll"),
            asyncio.create_task(self._stream_loop(), name="kds-stream"),
        ]
        self._open = True

    async def close(self) -> None:
        self._open = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.board.cancel_timers()
        self.connection_status = "disconnected"

    async def refresh(self) -> None:
        try:
            self.board.replace(await self.client.fetch_orders())
            self.last_error = None
        except KdsError as e:
            # El polling sigue; el error queda visible para la UI
            logger.warning("Error al cargar pedidos de cocina: %s", e)
            self.last_error = str(e)

    async def _poll_loop(self) -> None:
        while self._open:
            await asyncio.sleep(self.config.kds_poll_seconds)
            await self.refresh()

    def handle_message(self, raw) -> None:
        try:
            self.board.apply_event(json.loads(raw), self.config.kds_event_removal_seconds)
        except (ValueError, KeyError, TypeError, AttributeError):
            # JSON roto o evento sin los campos esperados
            logger.error("Mensaje KDS inválido: %r", raw)

    async def _stream_loop(self) -> None:
        while self._open:
            self.connection_status = "connecting"
            try:
                async with self._connect(self.client.ws_url) as ws:
                    self.connection_status = "connected"
                    logger.info("KDS conectado en %s", self.client.ws_url)
                    async for raw in ws:
                        self.handle_message(raw)
                self.connection_status = "disconnected"
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning("Canal KDS caído: %s", e)
                self.connection_status = "error"
            if self._open:
                await asyncio.sleep(self.config.kds_reconnect_seconds)


class KitchenSync:
    def __init__(
        self,
        client: KdsClient,
        sales: SalesService,
        config: Settings = default_settings,
        connect=websockets.connect,
    ):
        self.client = client
        self.sales = sales
        self.config = config
        self.board = OrderBoard()
        self.session = KdsSyncSession(client, self.board, config, connect=connect)

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    async def open_panel(self) -> None:
        await self.session.open()

    async def close_panel(self) -> None:
        await self.session.close()

    async def refresh(self) -> None:
        await self.session.refresh()

    async def push_sale(self, sale: Sale) -> bool:
        """Envía la venta a cocina. Un fallo no revierte la venta: se loguea."""
        if not self.enabled:
            return False
        try:
            await self.client.create_order(sale)
            return True
        except KdsError as e:
            logger.error("No se pudo enviar %s a cocina: %s", sale.sale_number, e)
            return False

    async def update_status(self, order_id: str, status: str) -> None:
        if not self.enabled:
            return
        order = self.board.find(order_id)
        if order is not None and not can_transition(order, status):
            raise InvalidStatusTransition(f"{order.status} -> {status} no permitido")

        await self.client.update_status(order_id, status)
        self.board.set_status(order_id, status)
        if status == "completed":
            self.board.schedule_removal(order_id, self.config.kds_completed_removal_seconds)
            if order is not None and order.order_type == "delivery":
                await self.sales.mark_delivered(order.sale_number)

    async def supersede(self, order_id: str) -> None:
        """Cierra un pedido reemplazado por una edición, sin validar el flujo."""
        if not self.enabled:
            return
        await self.client.update_status(order_id, "completed")
        self.board.remove(order_id)

    async def _speculative_put(self, order_id: str, local: dict, body: dict) -> None:
        restore = self.board.speculative(order_id, local)
        try:
            await self.client.update_order(order_id, body)
        except KdsError:
            restore()
            raise

    async def toggle_ingredient(self, order_id: str, item_index: int, ingredient: str) -> Optional[KitchenOrder]:
        if not self.enabled:
            return self.board.find(order_id)
        order = self.board.get(order_id)
        if not 0 <= item_index < len(order.items):
            raise NotFound(f"Item {item_index} no existe en el pedido {order.sale_number}")

        item = order.items[item_index]
        removed = list(item.removed_ingredients)
        if ingredient in removed:
            removed.remove(ingredient)
        else:
            removed.append(ingredient)
        items = list(order.items)
        items[item_index] = item.model_copy(update={"removed_ingredients": removed})

        await self._speculative_put(
            order_id,
            {"items": items},
            {"items": [i.model_dump() for i in items], "total": order.total},
        )
        return self.board.get(order_id)

    async def update_address(self, order_id: str, address: str) -> Optional[KitchenOrder]:
        if not self.enabled:
            return self.board.find(order_id)
        self.board.get(order_id)
        await self._speculative_put(order_id, {"delivery_address": address}, {"delivery_address": address})
        return self.board.get(order_id)

    async def update_payment(self, order_id: str, payment_method: str) -> Optional[KitchenOrder]:
        if not self.enabled:
            return self.board.find(order_id)
        self.board.get(order_id)
        await self._speculative_put(
            order_id, {"payment_method": payment_method}, {"payment_method": payment_method}
        )
        return self.board.get(order_id)

    async def save_edit(
        self,
        order_id: str,
        items: List[KitchenOrderItem],
        scheduled_time: Optional[str] = None,
        customer_name: Optional[str] = None,
        order_type: str = "pickup",
    ) -> None:
        if not self.enabled:
            return
        kept = [i for i in items if i.quantity >= 1]
        body = {
            "items": [i.model_dump() for i in kept],
            "total": sum(i.product_price * i.quantity for i in kept),
            "scheduled_time": resolve_scheduled_time(scheduled_time),
            "customer_name": customer_name or None,
            "order_type": order_type,
        }
        await self.client.update_order(order_id, body)
        await self.refresh()
