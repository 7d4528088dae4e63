from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock

from packages.shared.schemas.order_v1 import OrderStatusV1
from services.storefront.app.models.order import PaymentResultInput
from services.storefront.app.services.order_base import (
    OrderDraft,
    OrderNoteRecord,
    OrderRecord,
    ProductSnapshot,
)


class InMemoryCatalog:
    """Dict-backed catalog for tests and local experiments."""

    def __init__(self, products: list[ProductSnapshot] | None = None) -> None:
        self._lock = Lock()
        self._products: dict[str, ProductSnapshot] = {p.id: p for p in products or []}

    def add(self, product: ProductSnapshot) -> None:
        with self._lock:
            self._products[product.id] = product

    def stock_of(self, product_id: str) -> int:
        return self._products[product_id].stock

    def find_product(self, product_id: str) -> ProductSnapshot | None:
        return self._products.get(product_id)

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or product.stock < quantity:
                return False
            self._products[product_id] = replace(product, stock=product.stock - quantity)
            return True

    def increment_stock(self, product_id: str, quantity: int) -> None:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return
            self._products[product_id] = replace(product, stock=product.stock + quantity)


class InMemoryOrderStore:
    """Dict-backed order store.

    Cancelling restores stock in `catalog` when one is given.
    """

    def __init__(self, catalog: InMemoryCatalog | None = None) -> None:
        self._lock = Lock()
        self._catalog = catalog
        self._orders: dict[str, OrderRecord] = {}

    def create(self, draft: OrderDraft) -> OrderRecord:
        record = OrderRecord(
            id=draft.id,
            buyer_id=draft.buyer_id,
            company_id=draft.company_id,
            lines=draft.lines,
            shipping_address=draft.shipping_address,
            payment_method=draft.payment_method,
            items_price=draft.items_price,
            tax_price=draft.tax_price,
            shipping_price=draft.shipping_price,
            total_price=draft.total_price,
            status=OrderStatusV1.PENDING,
            created_at=datetime.utcnow(),
        )
        with self._lock:
            self._orders[record.id] = record
        return record

    def find_by_id(self, order_id: str) -> OrderRecord | None:
        return self._orders.get(order_id)

    def update_status(
        self,
        order_id: str,
        status: OrderStatusV1,
        expected: frozenset[OrderStatusV1],
    ) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status not in expected:
                return False

            changes: dict = {"status": status}
            if status is OrderStatusV1.DELIVERED:
                changes.update(is_delivered=True, delivered_at=datetime.utcnow())
            self._orders[order_id] = replace(order, **changes)
            return True

    def cancel(self, order_id: str, expected: frozenset[OrderStatusV1]) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status not in expected:
                return False

            if self._catalog is not None:
                restored: list[tuple[str, int]] = []
                try:
                    for line in order.lines:
                        self._catalog.increment_stock(line.product_id, line.quantity)
                        restored.append((line.product_id, line.quantity))
                except Exception:
                    for product_id, quantity in restored:
                        self._catalog.decrement_stock(product_id, quantity)
                    raise

            self._orders[order_id] = replace(order, status=OrderStatusV1.CANCELLED)
            return True

    def mark_paid(self, order_id: str, payment: PaymentResultInput) -> OrderRecord | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status is OrderStatusV1.CANCELLED:
                return None
            order = replace(order, is_paid=True, paid_at=datetime.utcnow(), payment_result=payment)
            self._orders[order_id] = order
            return order

    def add_note(self, order_id: str, note: OrderNoteRecord) -> OrderRecord | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order = replace(order, notes=(*order.notes, note))
            self._orders[order_id] = order
            return order

    def list_orders(
        self,
        *,
        buyer_id: str | None = None,
        company_id: str | None = None,
        status: OrderStatusV1 | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[OrderRecord], int]:
        rows = [
            o
            for o in self._orders.values()
            if (buyer_id is None or o.buyer_id == buyer_id)
            and (company_id is None or o.company_id == company_id)
            and (status is None or o.status is status)
        ]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        end = None if limit is None else offset + limit
        return rows[offset:end], len(rows)
