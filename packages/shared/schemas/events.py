"""Shared event schema (v1).

The backend stores an append-only event log. Stock movements and order lifecycle
changes are recorded here so they can be audited after the fact.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    ORDER = "Order"
    PRODUCT = "Product"


class EventTypeV1(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_PAID = "ORDER_PAID"
    ORDER_NOTE_ADDED = "ORDER_NOTE_ADDED"
    STOCK_DECREMENTED = "STOCK_DECREMENTED"
    STOCK_RESTORED = "STOCK_RESTORED"


class EventV1(BaseModel):
    id: str
    actor_id: str | None = None

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
