from __future__ import annotations

from packages.shared.schemas.order_v1 import OrderStatusV1, PaymentMethodV1
from pydantic import BaseModel, Field


class OrderItemInput(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    company_id: str = Field(..., min_length=1)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderCreateRequest(BaseModel):
    # Emptiness is reported by the order builder, not by schema validation.
    order_items: list[OrderItemInput] = Field(default_factory=list)
    shipping_address: ShippingAddress
    payment_method: PaymentMethodV1 = PaymentMethodV1.COD


class PaymentResultInput(BaseModel):
    id: str
    status: str
    update_time: str | None = None
    email_address: str | None = None


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatusV1


class OrderNoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)


class OrderLineOut(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: float
    line_total: float
    image: str
    company_id: str


class OrderNoteOut(BaseModel):
    author_id: str
    text: str
    is_admin_note: bool
    created_at: str


class OrderOut(BaseModel):
    id: str
    buyer_id: str
    company_id: str
    lines: list[OrderLineOut]
    shipping_address: ShippingAddress
    payment_method: PaymentMethodV1
    payment_result: PaymentResultInput | None = None

    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float

    status: OrderStatusV1
    is_paid: bool
    paid_at: str | None = None
    is_delivered: bool
    delivered_at: str | None = None

    notes: list[OrderNoteOut] = Field(default_factory=list)
    created_at: str


class GroupFailureOut(BaseModel):
    company_id: str
    code: str
    message: str


class OrderCreateResponse(BaseModel):
    orders: list[OrderOut]
    failed_groups: list[GroupFailureOut] = Field(default_factory=list)


class OrderPage(BaseModel):
    orders: list[OrderOut]
    total_pages: int
    current_page: int
    total_orders: int
