from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from kitchenpos.core.schemas import KitchenOrderItem, PaymentMethod
from kitchenpos.routers.cart import cart_view
from kitchenpos.services.terminal import PosTerminal, get_terminal

router = APIRouter(prefix="/pos/kitchen", tags=["pos-kitchen"])


class StatusBody(BaseModel):
    status: Literal["preparing", "on_delivery", "completed"]


class IngredientBody(BaseModel):
    item_index: int
    ingredient: str


class AddressBody(BaseModel):
    delivery_address: str


class PaymentBody(BaseModel):
    payment_method: PaymentMethod


class EditBody(BaseModel):
    items: List[KitchenOrderItem]
    scheduled_time: Optional[str] = None
    customer_name: Optional[str] = None
    order_type: Literal["pickup", "delivery"] = "pickup"


def board_view(t: PosTerminal) -> dict:
    session = t.kitchen.session
    return {
        "enabled": t.kitchen.enabled,
        "open": session.is_open,
        "connection": session.connection_status,
        "last_error": session.last_error,
        "orders": [o.model_dump() for o in t.kitchen.board.orders],
    }


# ---------- PANEL ----------
@router.post("/open")
async def open_panel(t: PosTerminal = Depends(get_terminal)):
    await t.kitchen.open_panel()
    return board_view(t)


@router.post("/close")
async def close_panel(t: PosTerminal = Depends(get_terminal)):
    await t.kitchen.close_panel()
    return board_view(t)


@router.get("/orders")
def list_orders(t: PosTerminal = Depends(get_terminal)):
    return board_view(t)


@router.post("/refresh")
async def refresh(t: PosTerminal = Depends(get_terminal)):
    await t.kitchen.refresh()
    return board_view(t)


# ---------- EDICIÓN EN VIVO ----------
@router.post("/orders/{order_id}/status")
async def update_status(order_id: str, body: StatusBody, t: PosTerminal = Depends(get_terminal)):
    await t.kitchen.update_status(order_id, body.status)
    return board_view(t)


@router.post("/orders/{order_id}/ingredients")
async def toggle_ingredient(order_id: str, body: IngredientBody, t: PosTerminal = Depends(get_terminal)):
    order = await t.kitchen.toggle_ingredient(order_id, body.item_index, body.ingredient)
    return order.model_dump() if order else None


@router.put("/orders/{order_id}/address")
async def update_address(order_id: str, body: AddressBody, t: PosTerminal = Depends(get_terminal)):
    order = await t.kitchen.update_address(order_id, body.delivery_address)
    return order.model_dump() if order else None


@router.put("/orders/{order_id}/payment")
async def update_payment(order_id: str, body: PaymentBody, t: PosTerminal = Depends(get_terminal)):
    order = await t.kitchen.update_payment(order_id, body.payment_method)
    return order.model_dump() if order else None


@router.put("/orders/{order_id}")
async def save_edit(order_id: str, body: EditBody, t: PosTerminal = Depends(get_terminal)):
    await t.kitchen.save_edit(order_id, body.items, body.scheduled_time, body.customer_name, body.order_type)
    return board_view(t)


@router.get("/removable")
async def removable_by_product(t: PosTerminal = Depends(get_terminal)):
    return await t.inventory.removable_by_product_name()


# ---------- EDITAR EN CARRITO ----------
@router.post("/orders/{order_id}/edit")
async def begin_edit(order_id: str, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        await t.checkout.begin_order_edit(t.kitchen.board.get(order_id))
        return cart_view(t)


@router.delete("/edit")
async def cancel_edit(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.cancel_edit()
        return cart_view(t)
