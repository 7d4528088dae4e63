"""Turns a company-agnostic cart into one priced, persisted order per company."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import uuid4

from packages.shared.schemas.order_v1 import PaymentMethodV1
from services.storefront.app.models.order import OrderItemInput, ShippingAddress
from services.storefront.app.services.order_base import (
    Catalog,
    CompanyMismatchError,
    CompanyOrderGroup,
    EmptyOrderRequestError,
    GroupFailure,
    InsufficientStockError,
    OrderDraft,
    OrderError,
    OrderItemLine,
    OrderRecord,
    OrderStore,
    PlacementResult,
    ProductNotFoundError,
)
from services.storefront.app.services.pricing import compute_prices

logger = logging.getLogger("storefront")


def verify_items(items: Sequence[OrderItemInput], catalog: Catalog) -> list[OrderItemLine]:
    """Check every requested item against the catalog and snapshot it.

    Read-only. Repeated product ids are checked against their combined quantity.
    """

    if not items:
        raise EmptyOrderRequestError()

    requested: dict[str, int] = {}
    lines: list[OrderItemLine] = []
    for item in items:
        product = catalog.find_product(item.product_id)
        if product is None:
            raise ProductNotFoundError(item.product_id)

        if product.company_id != item.company_id:
            raise CompanyMismatchError(product.id, product.name, item.company_id)

        requested[product.id] = requested.get(product.id, 0) + item.quantity
        if product.stock < requested[product.id]:
            raise InsufficientStockError(product.id, product.name)

        lines.append(
            OrderItemLine(
                product_id=product.id,
                name=product.name,
                quantity=item.quantity,
                unit_price=product.price,
                image=product.images[0] if product.images else "",
                company_id=product.company_id,
            )
        )

    return lines


def partition_by_company(lines: Sequence[OrderItemLine]) -> dict[str, CompanyOrderGroup]:
    groups: dict[str, CompanyOrderGroup] = {}
    for line in lines:
        group = groups.get(line.company_id)
        if group is None:
            group = groups[line.company_id] = CompanyOrderGroup(company_id=line.company_id)
        group.lines.append(line)
        group.items_subtotal += line.unit_price * line.quantity
    return groups


class OrderBuilder:
    def __init__(self, catalog: Catalog, orders: OrderStore) -> None:
        self._catalog = catalog
        self._orders = orders

    def place(
        self,
        *,
        buyer_id: str,
        items: Sequence[OrderItemInput],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethodV1 = PaymentMethodV1.COD,
    ) -> PlacementResult:
        """Verify, split and persist.

        Verification errors abort the whole request before any stock moves. After that,
        each company group succeeds or fails on its own and the result lists both.
        """

        lines = verify_items(items, self._catalog)
        groups = partition_by_company(lines)

        result = PlacementResult()
        for group in groups.values():
            try:
                record = self._place_group(buyer_id, group, shipping_address, payment_method)
            except OrderError as e:
                logger.warning("Order group for company=%s rejected: %s", group.company_id, e)
                result.failed.append(
                    GroupFailure(company_id=group.company_id, code=e.code, message=str(e))
                )
                continue
            except Exception as e:
                logger.exception("Order group for company=%s could not be saved", group.company_id)
                result.failed.append(
                    GroupFailure(company_id=group.company_id, code="persistence_failed", message=str(e))
                )
                continue

            logger.info(
                "Order %s created for buyer=%s company=%s total=%.2f",
                record.id,
                buyer_id,
                record.company_id,
                record.total_price,
            )
            result.created.append(record)

        return result

    def _place_group(
        self,
        buyer_id: str,
        group: CompanyOrderGroup,
        shipping_address: ShippingAddress,
        payment_method: PaymentMethodV1,
    ) -> OrderRecord:
        decremented: list[OrderItemLine] = []
        try:
            for line in group.lines:
                if not self._catalog.decrement_stock(line.product_id, line.quantity):
                    raise InsufficientStockError(line.product_id, line.name)
                decremented.append(line)

            prices = compute_prices(group.items_subtotal)
            return self._orders.create(
                OrderDraft(
                    id=uuid4().hex,
                    buyer_id=buyer_id,
                    company_id=group.company_id,
                    lines=tuple(group.lines),
                    shipping_address=shipping_address,
                    payment_method=payment_method,
                    items_price=prices.items_price,
                    tax_price=prices.tax_price,
                    shipping_price=prices.shipping_price,
                    total_price=prices.total_price,
                )
            )
        except Exception:
            self._restore(decremented)
            raise

    def _restore(self, lines: Sequence[OrderItemLine]) -> None:
        """Put back every decremented line.

        Called while the group's own error is propagating, so a failed restore is
        logged and the remaining lines are still attempted.
        """

        restored = 0
        for line in lines:
            try:
                self._catalog.increment_stock(line.product_id, line.quantity)
            except Exception:
                logger.exception(
                    "Could not restore %d unit(s) of product=%s after a failed order group",
                    line.quantity,
                    line.product_id,
                )
                continue
            restored += 1
        if restored:
            logger.info("Restored stock for %d line(s) after a failed order group", restored)
