from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

PaymentMethod = Literal["cash", "online", "card", "on_delivery", "unpaid"]
OrderType = Literal["pickup", "delivery"]
KitchenStatus = Literal["pending", "preparing", "on_delivery", "completed"]


def new_id() -> str:
    return str(uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------- catálogo ----------
class Product(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    price: int
    category: str = ""
    stock: int = 0
    active: bool = True
    uses_materia_prima: bool = False
    production_cost: float = 0.0
    display_order: Optional[int] = None


class MateriaPrima(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    stock: float = 0.0
    unit: str = "unidad"
    cost_per_unit: float = 0.0


class ProductMateriaPrima(BaseModel):
    """Vínculo receta: cuánta materia prima consume una unidad del producto."""

    id: str = Field(default_factory=new_id)
    product_id: str
    materia_prima_id: str
    quantity: float
    removable: bool = False


class ComboSlot(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    quantity: int = 1
    product_ids: List[str] = Field(default_factory=list)
    default_product_id: str
    is_dynamic: bool = False


class Combo(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    slots: List[ComboSlot] = Field(default_factory=list)
    price_type: Literal["fixed", "calculated"] = "fixed"
    fixed_price: Optional[int] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = None
    active: bool = True


class ComboSelection(BaseModel):
    slot_id: str
    slot_name: str
    product_id: str
    product_name: str
    product_price: int
    removed_ingredients: List[str] = Field(default_factory=list)


# ---------- configuración de negocio ----------
class AppSettings(BaseModel):
    id: str = "default"
    kds_enabled: bool = False
    kds_url: str = ""
    pos_layout_locked: bool = False
    category_order: List[str] = Field(default_factory=list)
    delivery_charge: int = 0
    free_delivery_threshold: int = 0


# ---------- caja ----------
class ChangeEntry(BaseModel):
    value: int
    count: int


class CashDrawerBill(BaseModel):
    id: str
    denomination: int
    quantity: int = 0
    updated_at: str = Field(default_factory=utc_now_iso)


class CashMovement(BaseModel):
    id: str = Field(default_factory=new_id)
    movement_type: Literal["sale", "change_given", "manual_add", "manual_remove"]
    sale_id: Optional[str] = None
    bills_in: Optional[Dict[str, int]] = None
    bills_out: Optional[Dict[str, int]] = None
    notes: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)


# ---------- ventas ----------
class SaleItem(BaseModel):
    id: str = Field(default_factory=new_id)
    product_id: str
    product_name: str
    product_price: int
    production_cost: float = 0.0
    quantity: int
    subtotal: int
    category: str = ""
    removed_ingredients: List[str] = Field(default_factory=list)
    combo_name: Optional[str] = None
    combo_instance_id: Optional[str] = None
    combo_slot_index: Optional[int] = None


class Sale(BaseModel):
    id: str = Field(default_factory=new_id)
    sale_number: str
    items: List[SaleItem] = Field(default_factory=list)
    subtotal: int
    delivery_charge: int = 0
    total_amount: int
    payment_method: PaymentMethod
    cash_received: Optional[int] = None
    change_given: Optional[int] = None
    bills_received: Optional[Dict[str, int]] = None
    bills_change: Optional[Dict[str, int]] = None
    scheduled_time: Optional[str] = None
    customer_name: Optional[str] = None
    order_type: Optional[OrderType] = None
    delivery_address: Optional[str] = None
    delivered_at: Optional[str] = None
    completed_at: str = Field(default_factory=utc_now_iso)
    created_at: str = Field(default_factory=utc_now_iso)


# ---------- cocina (KDS) ----------
class KitchenOrderItem(BaseModel):
    product_name: str
    quantity: int
    product_price: int
    removed_ingredients: List[str] = Field(default_factory=list)
    combo_name: Optional[str] = None
    category: Optional[str] = None

    @field_validator("removed_ingredients", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class KitchenOrder(BaseModel):
    id: str
    sale_number: str
    items: List[KitchenOrderItem] = Field(default_factory=list)
    total: int = 0
    status: KitchenStatus = "pending"
    scheduled_time: Optional[str] = None
    customer_name: Optional[str] = None
    order_type: Optional[OrderType] = None
    delivery_address: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    finished_at: Optional[str] = None
