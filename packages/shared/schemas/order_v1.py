"""Shared order schema enums (v1).

Storefront, company dashboard and admin clients should agree on these values.
They should remain stable and backwards compatible once shipped.
"""

from __future__ import annotations

from enum import Enum


class OrderStatusV1(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethodV1(str, Enum):
    COD = "COD"
    CREDIT_CARD = "CreditCard"
    PAYPAL = "PayPal"


class UserTypeV1(str, Enum):
    USER = "user"
    COMPANY = "company"
    ADMIN = "admin"
