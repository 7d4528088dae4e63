from __future__ import annotations

import pytest
from packages.shared.schemas.order_v1 import OrderStatusV1
from services.storefront.app.models.order import OrderItemInput, PaymentResultInput, ShippingAddress
from services.storefront.app.services.memory_store import InMemoryCatalog, InMemoryOrderStore
from services.storefront.app.services.order_base import (
    InvalidStatusTransitionError,
    OrderCancelledError,
    OrderNotFoundError,
    OrderRecord,
    ProductSnapshot,
)
from services.storefront.app.services.order_builder import OrderBuilder
from services.storefront.app.services.order_lifecycle import CANCELLABLE, OrderLifecycle, allowed_sources

ADDRESS = ShippingAddress(address="1 Main St", city="Springfield", postal_code="12345", country="US")


class _ConcurrentCancelStore(InMemoryOrderStore):
    """Lets a competing request win the cancellation right before ours."""

    def cancel(self, order_id, expected) -> bool:
        super().cancel(order_id, expected)
        return False


class _CancelBeforePaymentStore(InMemoryOrderStore):
    """Lets a competing cancellation land between the status read and the payment write."""

    def mark_paid(self, order_id, payment):
        self.cancel(order_id, CANCELLABLE)
        return super().mark_paid(order_id, payment)


class _FlakyRestockCatalog(InMemoryCatalog):
    """Fails the first restock of the given product."""

    def __init__(self, products: list[ProductSnapshot], failing_product_id: str) -> None:
        super().__init__(products)
        self._failing = failing_product_id

    def increment_stock(self, product_id: str, quantity: int) -> None:
        if product_id == self._failing:
            self._failing = None
            raise RuntimeError("catalog unavailable")
        super().increment_stock(product_id, quantity)


def _products() -> list[ProductSnapshot]:
    return [
        ProductSnapshot(id="p-jacket", name="Rain jacket", price=50.0, stock=5, company_id="co-a"),
        ProductSnapshot(id="p-boots", name="Hiking boots", price=89.5, stock=5, company_id="co-a"),
    ]


def _setup(
    store_cls: type[InMemoryOrderStore] = InMemoryOrderStore,
    catalog: InMemoryCatalog | None = None,
) -> tuple[InMemoryCatalog, InMemoryOrderStore, OrderLifecycle, OrderRecord]:
    catalog = catalog or InMemoryCatalog(_products())
    orders = store_cls(catalog)
    result = OrderBuilder(catalog, orders).place(
        buyer_id="u-1",
        items=[
            OrderItemInput(product_id="p-jacket", quantity=2, company_id="co-a"),
            OrderItemInput(product_id="p-boots", quantity=1, company_id="co-a"),
        ],
        shipping_address=ADDRESS,
    )
    return catalog, orders, OrderLifecycle(orders), result.created[0]


def test_allowed_sources() -> None:
    assert allowed_sources(OrderStatusV1.PENDING) == frozenset()
    assert allowed_sources(OrderStatusV1.SHIPPED) == {OrderStatusV1.PENDING, OrderStatusV1.PROCESSING}
    assert OrderStatusV1.DELIVERED not in allowed_sources(OrderStatusV1.CANCELLED)
    assert OrderStatusV1.CANCELLED not in allowed_sources(OrderStatusV1.DELIVERED)


def test_cancel_restores_stock_once() -> None:
    catalog, _orders, lifecycle, order = _setup()
    assert catalog.stock_of("p-jacket") == 3
    assert catalog.stock_of("p-boots") == 4

    cancelled = lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)
    assert cancelled.status is OrderStatusV1.CANCELLED
    assert catalog.stock_of("p-jacket") == 5
    assert catalog.stock_of("p-boots") == 5

    again = lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)
    assert again.status is OrderStatusV1.CANCELLED
    assert catalog.stock_of("p-jacket") == 5
    assert catalog.stock_of("p-boots") == 5


def test_cancel_lost_to_concurrent_cancel_does_not_restore_twice() -> None:
    catalog, _orders, lifecycle, order = _setup(_ConcurrentCancelStore)

    result = lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)

    assert result.status is OrderStatusV1.CANCELLED
    # Restored once, by the competing request.
    assert catalog.stock_of("p-jacket") == 5
    assert catalog.stock_of("p-boots") == 5


def test_failed_restock_leaves_order_open_and_retry_restores_all_lines() -> None:
    catalog = _FlakyRestockCatalog(_products(), failing_product_id="p-boots")
    _catalog, orders, lifecycle, order = _setup(catalog=catalog)

    with pytest.raises(RuntimeError, match="catalog unavailable"):
        lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)

    assert orders.find_by_id(order.id).status is OrderStatusV1.PENDING
    assert catalog.stock_of("p-jacket") == 3
    assert catalog.stock_of("p-boots") == 4

    retried = lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)

    assert retried.status is OrderStatusV1.CANCELLED
    assert catalog.stock_of("p-jacket") == 5
    assert catalog.stock_of("p-boots") == 5


def test_forward_transitions_and_delivery_flags() -> None:
    _catalog, _orders, lifecycle, order = _setup()

    processing = lifecycle.update_status(order.id, OrderStatusV1.PROCESSING)
    assert processing.status is OrderStatusV1.PROCESSING
    assert processing.is_delivered is False

    delivered = lifecycle.update_status(order.id, OrderStatusV1.DELIVERED)
    assert delivered.status is OrderStatusV1.DELIVERED
    assert delivered.is_delivered is True
    assert delivered.delivered_at is not None


@pytest.mark.parametrize(
    ("path", "target"),
    [
        ([OrderStatusV1.SHIPPED], OrderStatusV1.PROCESSING),
        ([OrderStatusV1.DELIVERED], OrderStatusV1.CANCELLED),
        ([OrderStatusV1.CANCELLED], OrderStatusV1.PROCESSING),
        ([OrderStatusV1.PROCESSING], OrderStatusV1.PENDING),
    ],
)
def test_invalid_transitions_are_rejected(path: list[OrderStatusV1], target: OrderStatusV1) -> None:
    _catalog, _orders, lifecycle, order = _setup()
    for status in path:
        lifecycle.update_status(order.id, status)

    with pytest.raises(InvalidStatusTransitionError):
        lifecycle.update_status(order.id, target)


def test_cancel_after_delivery_keeps_stock() -> None:
    catalog, _orders, lifecycle, order = _setup()
    lifecycle.update_status(order.id, OrderStatusV1.DELIVERED)

    with pytest.raises(InvalidStatusTransitionError, match="Delivered to Cancelled"):
        lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)

    assert catalog.stock_of("p-jacket") == 3


def test_unknown_order_is_not_found() -> None:
    _catalog, _orders, lifecycle, _order = _setup()
    with pytest.raises(OrderNotFoundError):
        lifecycle.update_status("missing", OrderStatusV1.CANCELLED)


def test_mark_paid_records_payment() -> None:
    _catalog, _orders, lifecycle, order = _setup()
    paid = lifecycle.mark_paid(
        order.id,
        PaymentResultInput(id="pay-1", status="COMPLETED", email_address="buyer@example.com"),
    )
    assert paid.is_paid is True
    assert paid.paid_at is not None
    assert paid.payment_result is not None
    assert paid.payment_result.id == "pay-1"


def test_mark_paid_rejects_cancelled_order() -> None:
    _catalog, _orders, lifecycle, order = _setup()
    lifecycle.update_status(order.id, OrderStatusV1.CANCELLED)

    with pytest.raises(OrderCancelledError):
        lifecycle.mark_paid(order.id, PaymentResultInput(id="pay-1", status="COMPLETED"))


def test_notes_are_appended_in_order() -> None:
    _catalog, _orders, lifecycle, order = _setup()
    lifecycle.add_note(order.id, author_id="co-a-owner", text="Packed", is_admin_note=False)
    updated = lifecycle.add_note(order.id, author_id="admin-1", text="Checked", is_admin_note=True)

    assert [(n.author_id, n.text, n.is_admin_note) for n in updated.notes] == [
        ("co-a-owner", "Packed", False),
        ("admin-1", "Checked", True),
    ]
    # Line contents never change.
    assert updated.lines == order.lines


def test_payment_racing_a_cancellation_is_rejected() -> None:
    _catalog, orders, lifecycle, order = _setup(_CancelBeforePaymentStore)

    with pytest.raises(OrderCancelledError):
        lifecycle.mark_paid(order.id, PaymentResultInput(id="pay-1", status="COMPLETED"))

    stored = orders.find_by_id(order.id)
    assert stored.status is OrderStatusV1.CANCELLED
    assert stored.is_paid is False
    assert stored.payment_result is None


def test_mark_paid_unknown_order_is_not_found() -> None:
    _catalog, _orders, lifecycle, _order = _setup()
    with pytest.raises(OrderNotFoundError):
        lifecycle.mark_paid("missing", PaymentResultInput(id="pay-1", status="COMPLETED"))
