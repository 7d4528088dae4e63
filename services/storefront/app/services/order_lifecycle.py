from __future__ import annotations

import logging
from datetime import datetime

from packages.shared.schemas.order_v1 import OrderStatusV1
from services.storefront.app.models.order import PaymentResultInput
from services.storefront.app.services.order_base import (
    InvalidStatusTransitionError,
    OrderCancelledError,
    OrderNoteRecord,
    OrderNotFoundError,
    OrderRecord,
    OrderStore,
)

logger = logging.getLogger("storefront")

FULFILMENT_SEQUENCE: tuple[OrderStatusV1, ...] = (
    OrderStatusV1.PENDING,
    OrderStatusV1.PROCESSING,
    OrderStatusV1.SHIPPED,
    OrderStatusV1.DELIVERED,
)
CANCELLABLE: frozenset[OrderStatusV1] = frozenset(
    {OrderStatusV1.PENDING, OrderStatusV1.PROCESSING, OrderStatusV1.SHIPPED}
)


def allowed_sources(target: OrderStatusV1) -> frozenset[OrderStatusV1]:
    """Statuses an order may be in when moving to `target`."""

    if target is OrderStatusV1.CANCELLED:
        return CANCELLABLE
    idx = FULFILMENT_SEQUENCE.index(target)
    return frozenset(FULFILMENT_SEQUENCE[:idx])


class OrderLifecycle:
    def __init__(self, orders: OrderStore) -> None:
        self._orders = orders

    def get(self, order_id: str) -> OrderRecord:
        order = self._orders.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def update_status(self, order_id: str, status: OrderStatusV1) -> OrderRecord:
        """Move an order forward, or cancel it and put its stock back.

        Cancellation writes the status and the restored stock together, so a stored
        Cancelled status always means the stock is back. Re-applying the current
        status is therefore a no-op.
        """

        order = self.get(order_id)
        if order.status is status:
            return order

        expected = allowed_sources(status)
        if order.status not in expected:
            raise InvalidStatusTransitionError(order.status, status)

        if status is OrderStatusV1.CANCELLED:
            changed = self._orders.cancel(order_id, expected)
        else:
            changed = self._orders.update_status(order_id, status, expected)

        if not changed:
            # Someone else changed the status between our read and the write.
            current = self.get(order_id)
            if current.status is status:
                return current
            raise InvalidStatusTransitionError(current.status, status)

        logger.info("Order %s moved %s -> %s", order_id, order.status.value, status.value)
        if status is OrderStatusV1.CANCELLED:
            logger.info("Order %s cancelled; restored stock for %d line(s)", order_id, len(order.lines))

        return self.get(order_id)

    def mark_paid(self, order_id: str, payment: PaymentResultInput) -> OrderRecord:
        updated = self._orders.mark_paid(order_id, payment)
        if updated is None:
            # The write is conditional on the order not being cancelled.
            self.get(order_id)
            raise OrderCancelledError(order_id)
        logger.info("Order %s marked paid (payment=%s)", order_id, payment.id)
        return updated

    def add_note(self, order_id: str, *, author_id: str, text: str, is_admin_note: bool) -> OrderRecord:
        note = OrderNoteRecord(
            author_id=author_id,
            text=text,
            is_admin_note=is_admin_note,
            created_at=datetime.utcnow(),
        )
        updated = self._orders.add_note(order_id, note)
        if updated is None:
            raise OrderNotFoundError(order_id)
        return updated
