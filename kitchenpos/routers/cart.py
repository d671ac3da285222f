from dataclasses import asdict
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kitchenpos.core.schemas import ComboSelection
from kitchenpos.services.cart import OrderDetails
from kitchenpos.services.terminal import PosTerminal, get_terminal
from kitchenpos.utils.schedule import resolve_scheduled_time

router = APIRouter(prefix="/pos/cart", tags=["pos-cart"])


class AddItemBody(BaseModel):
    product_id: str
    removed_ingredients: List[str] = Field(default_factory=list)


class AddComboBody(BaseModel):
    combo_id: str
    # Sin selección se usan los productos por defecto de cada slot
    selections: Optional[List[ComboSelection]] = None


class QuantityBody(BaseModel):
    quantity: int


class DetailsBody(BaseModel):
    order_type: Literal["pickup", "delivery"] = "pickup"
    customer_name: str = ""
    delivery_address: str = ""
    scheduled_time: str = ""


def cart_view(t: PosTerminal) -> dict:
    return {
        "lines": [line.as_dict() for line in t.cart.lines],
        "totals": asdict(t.checkout.totals()),
        "details": asdict(t.cart.details),
        "state": t.checkout.state.value,
        "editing": asdict(t.checkout.editing) if t.checkout.editing else None,
    }


@router.get("")
def get_cart(t: PosTerminal = Depends(get_terminal)):
    return cart_view(t)


@router.post("/items")
async def add_item(body: AddItemBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        product = await t.inventory.get_product(body.product_id)
        await t.cart.add_line(product, body.removed_ingredients)
        t.checkout.cart_changed()
        return cart_view(t)


@router.post("/combos")
async def add_combo(body: AddComboBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        combo = await t.inventory.get_combo(body.combo_id)
        selections = body.selections or await t.pricer.default_selections(combo)
        await t.cart.add_combo(combo, selections)
        t.checkout.cart_changed()
        return cart_view(t)


@router.patch("/items/{line_id}")
async def update_quantity(line_id: str, body: QuantityBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        await t.cart.update_quantity(line_id, body.quantity)
        t.checkout.cart_changed()
        return cart_view(t)


@router.delete("/items/{line_id}")
async def remove_item(line_id: str, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.cart.remove_line(line_id)
        t.checkout.cart_changed()
        return cart_view(t)


@router.put("/details")
async def set_details(body: DetailsBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        # Valida el horario antes de guardarlo
        resolve_scheduled_time(body.scheduled_time)
        t.cart.details = OrderDetails(**body.model_dump())
        t.checkout.cart_changed()
        return cart_view(t)


@router.delete("")
async def clear_cart(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.cart.clear()
        t.checkout.cart_changed()
        return cart_view(t)


@router.get("/removable/{product_id}")
async def removable_ingredients(product_id: str, t: PosTerminal = Depends(get_terminal)):
    return {"product_id": product_id, "ingredients": await t.inventory.removable_ingredients(product_id)}
