import asyncio
import json

import pytest

from conftest import FRIES, KDS_URL, FakeConnector
from kitchenpos.core.errors import InvalidStatusTransition, KdsError
from kitchenpos.core.schemas import AppSettings, KitchenOrder, KitchenOrderItem, Sale, SaleItem
from kitchenpos.services.kds import (
    KdsClient,
    KdsSyncSession,
    OrderBoard,
    build_order_payload,
    can_transition,
)
from kitchenpos.services.store import SALES


def _order(order_id, created="2030-01-01T10:00:00+00:00", scheduled=None, **kw):
    return KitchenOrder(
        id=order_id,
        sale_number=f"S-{order_id}",
        items=[KitchenOrderItem(product_name="Burger", quantity=1, product_price=1000,
                                removed_ingredients=[])],
        total=1000,
        created_at=created,
        scheduled_time=scheduled,
        **kw,
    )


# ---------- orden y merge ----------
def test_board_sorts_asap_first_then_by_schedule():
    board = OrderBoard()
    board.replace([
        _order("a", scheduled="2030-01-01T13:00:00+00:00"),
        _order("b", created="2030-01-01T10:05:00+00:00"),
        _order("c", scheduled="2030-01-01T12:00:00+00:00"),
        _order("d", created="2030-01-01T10:01:00+00:00"),
    ])
    assert [o.id for o in board.orders] == ["d", "b", "c", "a"]


def test_replace_keeps_only_visible_statuses():
    board = OrderBoard()
    board.replace([_order("a"), _order("b", status="completed"), _order("c", status="preparing"),
                   _order("d", status="on_delivery")])
    assert sorted(o.id for o in board.orders) == ["a", "d"]


def test_duplicate_new_order_is_dropped():
    board = OrderBoard()
    board.replace([_order("a")])
    event = {"type": "new_order", "order": _order("a").model_dump()}
    board.apply_event(event, 0.01)
    board.apply_event(event, 0.01)
    board.apply_event({"type": "new_order", "order": _order("b").model_dump()}, 0.01)
    assert [o.id for o in board.orders] == ["a", "b"]


def test_full_update_does_not_clobber_status():
    board = OrderBoard()
    board.replace([_order("a", status="on_delivery", order_type="delivery")])
    changed = _order("a", status="pending", customer_name="Ana").model_dump()
    board.apply_event({"type": "order_full_update", "order": changed}, 0.01)
    order = board.get("a")
    assert order.status == "on_delivery"
    assert order.customer_name == "Ana"


def test_deleted_and_unknown_events():
    board = OrderBoard()
    board.replace([_order("a"), _order("b")])
    board.apply_event({"type": "order_deleted", "orderId": "a"}, 0.01)
    board.apply_event({"type": "ping"}, 0.01)
    assert [o.id for o in board.orders] == ["b"]


@pytest.mark.asyncio
async def test_completed_event_removes_after_delay():
    board = OrderBoard()
    board.replace([_order("a")])
    board.apply_event({"type": "order_updated", "orderId": "a", "status": "completed"}, 0.01)
    assert board.get("a").status == "completed"
    assert board.get("a").finished_at is not None
    await asyncio.sleep(0.05)
    assert "a" not in board


def test_speculative_restore():
    board = OrderBoard()
    board.replace([_order("a", delivery_address="Calle 1")])
    restore = board.speculative("a", {"delivery_address": "Calle 2"})
    assert board.get("a").delivery_address == "Calle 2"
    restore()
    assert board.get("a").delivery_address == "Calle 1"


def test_status_flow():
    pickup = _order("a", order_type="pickup")
    delivery = _order("b", order_type="delivery")
    assert can_transition(pickup, "preparing")
    assert can_transition(pickup, "completed")
    assert not can_transition(pickup, "on_delivery")
    assert can_transition(delivery, "on_delivery")
    assert not can_transition(delivery, "completed")


# ---------- cliente HTTP ----------
def test_payload_from_sale():
    sale = Sale(
        sale_number="S-3",
        items=[SaleItem(product_id="p-fries", product_name="Fries", product_price=500, quantity=2,
                        subtotal=1000, category="sides")],
        subtotal=1000,
        total_amount=1000,
        payment_method="cash",
        order_type="pickup",
        delivery_address="no se usa",
    )
    body = build_order_payload(sale)
    assert body["sale_number"] == "S-3"
    assert body["items"][0] == {
        "product_name": "Fries",
        "quantity": 2,
        "product_price": 500,
        "removed_ingredients": [],
        "combo_name": None,
        "category": "sides",
    }
    assert body["delivery_address"] is None
    assert body["customer_name"] is None


@pytest.mark.asyncio
async def test_disabled_client_is_noop(http):
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=""), session=http)
    assert await client.fetch_orders() == []
    await client.update_status("a", "completed")
    assert http.calls == []


@pytest.mark.asyncio
async def test_client_requests(http):
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=KDS_URL + "/"), session=http, timeout=3)
    http.orders = [_order("a").model_dump()]
    orders = await client.fetch_orders()
    assert [o.id for o in orders] == ["a"]
    get = http.calls_for("GET")[0]
    assert get["url"] == f"{KDS_URL}/api/orders"
    assert get["params"] == {"status": "pending,on_delivery"}
    assert get["timeout"] == 3

    await client.update_status("a", "preparing")
    patch = http.calls_for("PATCH")[0]
    assert patch["url"] == f"{KDS_URL}/api/orders/a/status"
    assert patch["json"] == {"status": "preparing"}
    assert client.ws_url == "ws://kds.local:4000"


@pytest.mark.asyncio
async def test_client_errors_raise_kds_error(http):
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=KDS_URL), session=http)
    http.status["PUT"] = 500
    with pytest.raises(KdsError):
        await client.update_order("a", {"total": 1})
    http.down = True
    with pytest.raises(KdsError):
        await client.fetch_orders()


# ---------- sesión de sincronización ----------
@pytest.mark.asyncio
async def test_session_streams_events_and_reconnects(http, config):
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=KDS_URL), session=http)
    board = OrderBoard()
    new_order = json.dumps({"type": "new_order", "order": _order("z").model_dump()})
    connector = FakeConnector(OSError("refused"), ["no es json", new_order, new_order])
    session = KdsSyncSession(client, board, config, connect=connector)

    await session.open()
    for _ in range(50):
        if "z" in board:
            break
        await asyncio.sleep(0.01)

    assert [o.id for o in board.orders] == ["z"]
    assert connector.urls == ["ws://kds.local:4000", "ws://kds.local:4000"]
    assert session.connection_status == "connected"

    await session.close()
    assert session.connection_status == "disconnected"
    assert not session.is_open


@pytest.mark.asyncio
async def test_poll_errors_do_not_stop_session(http, config):
    http.down = True
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=KDS_URL), session=http)
    session = KdsSyncSession(client, OrderBoard(), config.model_copy(update={"kds_poll_seconds": 0.01}),
                             connect=FakeConnector())
    await session.open()
    await asyncio.sleep(0.05)
    assert session.last_error is not None
    assert len(http.calls_for("GET")) >= 2

    http.down = False
    http.orders = [_order("a").model_dump()]
    await asyncio.sleep(0.05)
    assert session.last_error is None
    await session.close()


@pytest.mark.asyncio
async def test_malformed_orders_keep_polling(http, config):
    http.orders = [{"id": "x"}]
    client = KdsClient(AppSettings(kds_enabled=True, kds_url=KDS_URL), session=http)
    with pytest.raises(KdsError):
        await client.fetch_orders()

    board = OrderBoard()
    session = KdsSyncSession(client, board, config.model_copy(update={"kds_poll_seconds": 0.01}),
                             connect=FakeConnector())
    await session.open()
    assert session.is_open
    assert session.last_error is not None

    http.orders = [_order("a").model_dump()]
    await asyncio.sleep(0.05)
    assert session.last_error is None
    assert [o.id for o in board.orders] == ["a"]
    await session.close()


@pytest.mark.asyncio
async def test_disabled_session_does_not_open(http, config):
    client = KdsClient(AppSettings(), session=http)
    session = KdsSyncSession(client, OrderBoard(), config, connect=FakeConnector())
    await session.open()
    assert not session.is_open
    await session.close()


# ---------- ediciones en vivo ----------
@pytest.mark.asyncio
async def test_sale_is_pushed_to_kitchen(kds_terminal, http):
    t = kds_terminal
    await t.cart.add_line(FRIES)
    result = await t.checkout.send_without_payment()
    assert result.kds_notified is True
    post = http.calls_for("POST")[0]
    assert post["url"] == f"{KDS_URL}/api/orders"
    assert post["json"]["payment_method"] == "unpaid"


@pytest.mark.asyncio
async def test_kds_failure_keeps_sale(kds_terminal, http, kds_store):
    t = kds_terminal
    http.status["POST"] = 503
    await t.cart.add_line(FRIES)
    result = await t.checkout.send_without_payment()
    assert result.kds_notified is False
    assert len(await kds_store.list(SALES)) == 1


@pytest.mark.asyncio
async def test_update_status_completes_and_stamps_delivery(kds_terminal, http):
    t = kds_terminal
    await t.cart.add_line(FRIES)
    t.cart.details.order_type = "delivery"
    sale = (await t.checkout.send_without_payment()).sale

    t.kitchen.board.replace([_order("k1", order_type="delivery", status="on_delivery").model_copy(
        update={"sale_number": sale.sale_number})])
    await t.kitchen.update_status("k1", "completed")

    assert t.kitchen.board.get("k1").status == "completed"
    assert (await t.sales.get(sale.id)).delivered_at is not None
    await asyncio.sleep(0.1)
    assert "k1" not in t.kitchen.board


@pytest.mark.asyncio
async def test_invalid_transition_is_rejected(kds_terminal, http):
    t = kds_terminal
    t.kitchen.board.replace([_order("k1", order_type="delivery")])
    with pytest.raises(InvalidStatusTransition):
        await t.kitchen.update_status("k1", "completed")
    assert http.calls_for("PATCH") == []


@pytest.mark.asyncio
async def test_toggle_ingredient_reverts_on_failure(kds_terminal, http):
    t = kds_terminal
    t.kitchen.board.replace([_order("k1")])

    order = await t.kitchen.toggle_ingredient("k1", 0, "pickles")
    assert order.items[0].removed_ingredients == ["pickles"]
    assert http.calls_for("PUT")[0]["json"]["items"][0]["removed_ingredients"] == ["pickles"]

    http.status["PUT"] = 500
    with pytest.raises(KdsError):
        await t.kitchen.toggle_ingredient("k1", 0, "pickles")
    assert t.kitchen.board.get("k1").items[0].removed_ingredients == ["pickles"]


@pytest.mark.asyncio
async def test_update_address_reverts_on_failure(kds_terminal, http):
    t = kds_terminal
    t.kitchen.board.replace([_order("k1", delivery_address="Calle 1", order_type="delivery")])
    http.down = True
    with pytest.raises(KdsError):
        await t.kitchen.update_address("k1", "Calle 2")
    assert t.kitchen.board.get("k1").delivery_address == "Calle 1"


@pytest.mark.asyncio
async def test_live_edits_are_noops_when_disabled(terminal, http):
    t = terminal
    assert await t.kitchen.toggle_ingredient("k-1", 0, "pickles") is None
    assert await t.kitchen.update_address("k-1", "Calle 2") is None
    assert await t.kitchen.update_payment("k-1", "cash") is None
    assert http.calls == []


@pytest.mark.asyncio
async def test_save_edit_recomputes_total_and_refreshes(kds_terminal, http):
    t = kds_terminal
    items = [
        KitchenOrderItem(product_name="Burger", quantity=2, product_price=1000),
        KitchenOrderItem(product_name="Fries", quantity=0, product_price=500),
    ]
    http.orders = [_order("k1").model_dump()]
    await t.kitchen.save_edit("k1", items, "", "Ana", "pickup")

    put = http.calls_for("PUT")[0]
    assert put["json"]["total"] == 2000
    assert len(put["json"]["items"]) == 1
    assert put["json"]["scheduled_time"] is None
    assert [o.id for o in t.kitchen.board.orders] == ["k1"]


@pytest.mark.asyncio
async def test_editing_order_supersedes_original(kds_terminal, http):
    t = kds_terminal
    t.kitchen.board.replace([_order("k1")])
    await t.checkout.begin_order_edit(t.kitchen.board.get("k1"))
    result = await t.checkout.send_without_payment()

    assert result.superseded_order_id == "k1"
    assert http.calls_for("PATCH")[0]["json"] == {"status": "completed"}
    assert "k1" not in t.kitchen.board
