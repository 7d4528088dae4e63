from __future__ import annotations

import pytest
from services.storefront.app.models.order import OrderItemInput
from services.storefront.app.services.memory_store import InMemoryCatalog
from services.storefront.app.services.order_base import (
    CompanyMismatchError,
    EmptyOrderRequestError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductSnapshot,
)
from services.storefront.app.services.order_builder import verify_items


def _catalog() -> InMemoryCatalog:
    return InMemoryCatalog(
        [
            ProductSnapshot(
                id="p-jacket",
                name="Rain jacket",
                price=50.0,
                stock=3,
                company_id="co-a",
                images=("img/jacket-1.jpg", "img/jacket-2.jpg"),
            ),
            ProductSnapshot(id="p-lamp", name="Desk lamp", price=30.0, stock=1, company_id="co-b"),
        ]
    )


def _item(product_id: str, quantity: int, company_id: str) -> OrderItemInput:
    return OrderItemInput(product_id=product_id, quantity=quantity, company_id=company_id)


def test_verify_snapshots_current_catalog_values() -> None:
    lines = verify_items([_item("p-jacket", 2, "co-a"), _item("p-lamp", 1, "co-b")], _catalog())

    assert [ln.product_id for ln in lines] == ["p-jacket", "p-lamp"]
    jacket = lines[0]
    assert jacket.name == "Rain jacket"
    assert jacket.unit_price == 50.0
    assert jacket.quantity == 2
    assert jacket.image == "img/jacket-1.jpg"
    assert jacket.company_id == "co-a"
    assert lines[1].image == ""


def test_verify_rejects_empty_request() -> None:
    with pytest.raises(EmptyOrderRequestError, match="No order items"):
        verify_items([], _catalog())


def test_verify_rejects_unknown_product() -> None:
    with pytest.raises(ProductNotFoundError) as exc_info:
        verify_items([_item("p-jacket", 1, "co-a"), _item("p-missing", 1, "co-a")], _catalog())

    assert exc_info.value.product_id == "p-missing"


def test_verify_rejects_company_mismatch() -> None:
    with pytest.raises(CompanyMismatchError, match="does not belong to the selected company"):
        verify_items([_item("p-lamp", 1, "co-a")], _catalog())


def test_verify_rejects_quantity_above_stock() -> None:
    with pytest.raises(InsufficientStockError, match="Not enough stock for Desk lamp"):
        verify_items([_item("p-lamp", 2, "co-b")], _catalog())


def test_verify_counts_repeated_products_together() -> None:
    with pytest.raises(InsufficientStockError):
        verify_items([_item("p-jacket", 2, "co-a"), _item("p-jacket", 2, "co-a")], _catalog())


def test_verify_does_not_touch_stock() -> None:
    catalog = _catalog()
    with pytest.raises(InsufficientStockError):
        verify_items([_item("p-jacket", 1, "co-a"), _item("p-lamp", 5, "co-b")], catalog)

    assert catalog.stock_of("p-jacket") == 3
    assert catalog.stock_of("p-lamp") == 1
