from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from packages.shared.schemas.order_v1 import OrderStatusV1, PaymentMethodV1
from services.storefront.app.models.order import PaymentResultInput, ShippingAddress


class OrderError(Exception):
    """Base class for order errors reported back to the caller."""

    code = "order_error"


class EmptyOrderRequestError(OrderError):
    code = "empty_order_request"

    def __init__(self) -> None:
        super().__init__("No order items")


class ProductNotFoundError(OrderError):
    code = "product_not_found"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class CompanyMismatchError(OrderError):
    code = "company_mismatch"

    def __init__(self, product_id: str, product_name: str, declared_company_id: str) -> None:
        super().__init__(
            f"Product {product_name} does not belong to the selected company "
            f"(company={declared_company_id})"
        )
        self.product_id = product_id
        self.declared_company_id = declared_company_id


class InsufficientStockError(OrderError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, product_name: str) -> None:
        super().__init__(f"Not enough stock for {product_name}")
        self.product_id = product_id


class OrderNotFoundError(OrderError):
    code = "order_not_found"

    def __init__(self, order_id: str) -> None:
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidStatusTransitionError(OrderError):
    code = "invalid_status_transition"

    def __init__(self, current: OrderStatusV1, requested: OrderStatusV1) -> None:
        super().__init__(f"Cannot move order from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


class OrderCancelledError(OrderError):
    code = "order_cancelled"

    def __init__(self, order_id: str) -> None:
        super().__init__("Order is cancelled")
        self.order_id = order_id


class OrderAccessDeniedError(OrderError):
    code = "access_denied"

    def __init__(self, action: str) -> None:
        super().__init__(f"Not authorized to {action} this order")


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    id: str
    name: str
    price: float
    stock: int
    company_id: str
    images: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OrderItemLine:
    product_id: str
    name: str
    quantity: int
    unit_price: float
    image: str
    company_id: str

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass(slots=True)
class CompanyOrderGroup:
    company_id: str
    lines: list[OrderItemLine] = field(default_factory=list)
    items_subtotal: float = 0.0


@dataclass(frozen=True, slots=True)
class OrderNoteRecord:
    author_id: str
    text: str
    is_admin_note: bool
    created_at: datetime


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """Everything needed to persist one company's order."""

    id: str
    buyer_id: str
    company_id: str
    lines: tuple[OrderItemLine, ...]
    shipping_address: ShippingAddress
    payment_method: PaymentMethodV1
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float


@dataclass(frozen=True, slots=True)
class OrderRecord:
    id: str
    buyer_id: str
    company_id: str
    lines: tuple[OrderItemLine, ...]
    shipping_address: ShippingAddress
    payment_method: PaymentMethodV1
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float
    status: OrderStatusV1
    created_at: datetime
    is_paid: bool = False
    paid_at: datetime | None = None
    payment_result: PaymentResultInput | None = None
    is_delivered: bool = False
    delivered_at: datetime | None = None
    notes: tuple[OrderNoteRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class GroupFailure:
    company_id: str
    code: str
    message: str


@dataclass(slots=True)
class PlacementResult:
    created: list[OrderRecord] = field(default_factory=list)
    failed: list[GroupFailure] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.created) and bool(self.failed)


class Catalog(Protocol):
    def find_product(self, product_id: str) -> ProductSnapshot | None: ...

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Decrement only if enough stock remains. Returns False otherwise."""
        ...

    def increment_stock(self, product_id: str, quantity: int) -> None: ...


class OrderStore(Protocol):
    def create(self, draft: OrderDraft) -> OrderRecord: ...

    def find_by_id(self, order_id: str) -> OrderRecord | None: ...

    def update_status(
        self,
        order_id: str,
        status: OrderStatusV1,
        expected: frozenset[OrderStatusV1],
    ) -> bool:
        """Set status only while the stored status is one of `expected`."""
        ...

    def cancel(self, order_id: str, expected: frozenset[OrderStatusV1]) -> bool:
        """Set Cancelled and put every line's quantity back in stock as one unit.

        Either both happen or neither does. Returns False if the stored status is not
        one of `expected`.
        """
        ...

    def mark_paid(self, order_id: str, payment: PaymentResultInput) -> OrderRecord | None:
        """Record payment unless the order is missing or already cancelled."""
        ...

    def add_note(self, order_id: str, note: OrderNoteRecord) -> OrderRecord | None: ...

    def list_orders(
        self,
        *,
        buyer_id: str | None = None,
        company_id: str | None = None,
        status: OrderStatusV1 | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[OrderRecord], int]: ...
