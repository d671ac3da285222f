from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kitchenpos.core.schemas import PaymentMethod
from kitchenpos.routers.cart import cart_view
from kitchenpos.services.checkout import SaleResult, mark_sale_paid
from kitchenpos.services.terminal import PosTerminal, get_terminal

router = APIRouter(prefix="/pos", tags=["pos-checkout"])


class MethodBody(BaseModel):
    method: PaymentMethod


class BillBody(BaseModel):
    bill: int


class MarkPaidBody(BaseModel):
    method: PaymentMethod
    bills: List[int] = Field(default_factory=list)


def payment_view(t: PosTerminal) -> dict:
    p = t.checkout.payment
    return {
        "state": t.checkout.state.value,
        "method": p.method,
        "cash_received": p.cash_received,
        "bill_history": list(p.bill_history),
        "change": t.checkout.change(),
        "change_breakdown": [b.model_dump() for b in p.change_breakdown] if p.change_breakdown is not None else None,
        "can_complete": t.checkout.can_complete(),
        "totals": asdict(t.checkout.totals()),
        "next_sale_number": t.checkout.next_sale_number,
    }


def _result_view(result: SaleResult) -> dict:
    return {
        "sale": result.sale.model_dump(),
        "kds_notified": result.kds_notified,
        "superseded_order_id": result.superseded_order_id,
        "stock": asdict(result.stock),
    }


# ---------- PAGO ----------
@router.get("/checkout")
def get_payment(t: PosTerminal = Depends(get_terminal)):
    return payment_view(t)


@router.post("/checkout/begin")
async def begin_payment(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        await t.checkout.begin_payment()
        return payment_view(t)


@router.post("/checkout/method")
async def select_method(body: MethodBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.select_method(body.method)
        return payment_view(t)


@router.post("/checkout/cash")
async def add_cash(body: BillBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.add_cash(body.bill)
        return payment_view(t)


@router.post("/checkout/cash/undo")
async def undo_bill(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.undo_last_bill()
        return payment_view(t)


@router.post("/checkout/cash/reset")
async def reset_cash(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.reset_cash()
        return payment_view(t)


@router.post("/checkout/cancel")
async def cancel_payment(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        t.checkout.cancel_payment()
        return cart_view(t)


# ---------- CIERRE ----------
@router.post("/checkout/complete")
async def complete_sale(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        return _result_view(await t.checkout.complete_sale())


@router.post("/checkout/send-unpaid")
async def send_without_payment(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        return _result_view(await t.checkout.send_without_payment())


@router.post("/sales/{sale_id}/pay")
async def mark_paid(sale_id: str, body: MarkPaidBody, t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        available = await t.cash_drawer.bills() if t.config.use_drawer_limits else None
        sale = await mark_sale_paid(t.sales, t.cash_drawer, sale_id, body.method, body.bills, available)
        return sale.model_dump()


@router.get("/sales")
async def list_sales(t: PosTerminal = Depends(get_terminal)):
    return [s.model_dump() for s in await t.sales.list_sales()]


# ---------- CAJA / CONFIG ----------
@router.get("/cash-drawer")
async def cash_drawer(t: PosTerminal = Depends(get_terminal)):
    bills = await t.cash_drawer.bills()
    return {
        "bills": {str(d): q for d, q in sorted(bills.items(), reverse=True)},
        "total": await t.cash_drawer.total_cash(),
        "movements": [m.model_dump() for m in await t.cash_drawer.movements(limit=20)],
    }


@router.post("/settings/reload")
async def reload_settings(t: PosTerminal = Depends(get_terminal)):
    async with t.lock:
        app_settings = await t.reload_settings()
        t.checkout.cart_changed()
        return app_settings.model_dump()
