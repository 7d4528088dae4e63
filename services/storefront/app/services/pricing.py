"""Per-company order pricing.

Values stay unrounded floats through every step; `round_money` is applied only when
an order is rendered for a client.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from services.storefront.app.services.order_base import OrderItemLine

TAX_RATE = 0.15
FREE_SHIPPING_THRESHOLD = 100.0
FLAT_SHIPPING_PRICE = 10.0


@dataclass(frozen=True, slots=True)
class OrderPrices:
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float


def items_price(lines: Iterable[OrderItemLine]) -> float:
    total = 0.0
    for line in lines:
        total += line.unit_price * line.quantity
    return total


def tax_price(items_total: float) -> float:
    return items_total * TAX_RATE


def shipping_price(items_total: float) -> float:
    # Free shipping starts strictly above the threshold.
    if items_total > FREE_SHIPPING_THRESHOLD:
        return 0.0
    return FLAT_SHIPPING_PRICE


def compute_prices(items_total: float) -> OrderPrices:
    tax = tax_price(items_total)
    shipping = shipping_price(items_total)
    return OrderPrices(
        items_price=items_total,
        tax_price=tax,
        shipping_price=shipping,
        total_price=items_total + tax + shipping,
    )


def round_money(value: float) -> float:
    return round(value, 2)
