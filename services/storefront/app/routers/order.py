from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from packages.shared.schemas.order_v1 import OrderStatusV1, UserTypeV1
from services.storefront.app.auth import Principal, ensure_can_manage, ensure_can_view, get_principal
from services.storefront.app.db.deps import get_db
from services.storefront.app.db.models import EventLog, User
from services.storefront.app.models.order import (
    GroupFailureOut,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderLineOut,
    OrderNoteOut,
    OrderNoteRequest,
    OrderOut,
    OrderPage,
    OrderStatusUpdateRequest,
    PaymentResultInput,
)
from services.storefront.app.services.order_base import (
    CompanyMismatchError,
    EmptyOrderRequestError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    OrderAccessDeniedError,
    OrderCancelledError,
    OrderError,
    OrderNotFoundError,
    OrderRecord,
    ProductNotFoundError,
)
from services.storefront.app.services.order_builder import OrderBuilder
from services.storefront.app.services.order_lifecycle import OrderLifecycle
from services.storefront.app.services.pricing import round_money
from services.storefront.app.services.sql_store import SqlCatalog, SqlOrderStore
from sqlalchemy.orm import Session

logger = logging.getLogger("storefront")

router = APIRouter()


def _raise_order_http_error(e: Exception) -> None:
    if isinstance(e, HTTPException):
        raise e

    if isinstance(e, (EmptyOrderRequestError, CompanyMismatchError)):
        raise HTTPException(status_code=400, detail=str(e)) from e

    if isinstance(e, OrderAccessDeniedError):
        raise HTTPException(status_code=403, detail=str(e)) from e

    if isinstance(e, (ProductNotFoundError, OrderNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(e, (InsufficientStockError, InvalidStatusTransitionError, OrderCancelledError)):
        raise HTTPException(status_code=409, detail=str(e)) from e

    if isinstance(e, OrderError):
        raise HTTPException(status_code=400, detail=str(e)) from e

    logger.exception("Unhandled error in order handler")
    raise HTTPException(status_code=500, detail="Internal Server Error") from e


@router.post("/v1/orders", response_model=OrderCreateResponse, status_code=201)
def create_order(
    payload: OrderCreateRequest,
    response: Response,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderCreateResponse:
    _ensure_user(db, principal)

    builder = OrderBuilder(
        SqlCatalog(db, actor_id=principal.user_id),
        SqlOrderStore(db, actor_id=principal.user_id),
    )
    try:
        result = builder.place(
            buyer_id=principal.user_id,
            items=payload.order_items,
            shipping_address=payload.shipping_address,
            payment_method=payload.payment_method,
        )
    except Exception as e:
        _raise_order_http_error(e)

    if not result.created:
        response.status_code = 409
    elif result.failed:
        response.status_code = 207

    return OrderCreateResponse(
        orders=[_order_out(r) for r in result.created],
        failed_groups=[
            GroupFailureOut(company_id=f.company_id, code=f.code, message=f.message)
            for f in result.failed
        ],
    )


@router.get("/v1/orders/mine", response_model=list[OrderOut])
def list_my_orders(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> list[OrderOut]:
    records, _total = SqlOrderStore(db).list_orders(buyer_id=principal.user_id)
    return [_order_out(r) for r in records]


@router.get("/v1/orders/company", response_model=OrderPage)
def list_company_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: OrderStatusV1 | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderPage:
    if principal.user_type is not UserTypeV1.COMPANY:
        raise HTTPException(status_code=403, detail="Not authorized as a company")

    records, total = SqlOrderStore(db).list_orders(
        company_id=principal.company_id,
        status=status,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return _page(records, total, page, limit)


@router.get("/v1/orders", response_model=OrderPage)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    company_id: str | None = None,
    status: OrderStatusV1 | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderPage:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized as an admin")

    records, total = SqlOrderStore(db).list_orders(
        company_id=company_id,
        status=status,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return _page(records, total, page, limit)


@router.get("/v1/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderOut:
    try:
        order = _lifecycle(db, principal).get(order_id)
        ensure_can_view(principal, order)
    except Exception as e:
        _raise_order_http_error(e)

    return _order_out(order)


@router.put("/v1/orders/{order_id}/pay", response_model=OrderOut)
def pay_order(
    order_id: str,
    payload: PaymentResultInput,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderOut:
    _ensure_user(db, principal)
    lifecycle = _lifecycle(db, principal)
    try:
        ensure_can_manage(principal, lifecycle.get(order_id), "update")
        order = lifecycle.mark_paid(order_id, payload)
    except Exception as e:
        _raise_order_http_error(e)

    return _order_out(order)


@router.put("/v1/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdateRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderOut:
    _ensure_user(db, principal)
    lifecycle = _lifecycle(db, principal)
    try:
        ensure_can_manage(principal, lifecycle.get(order_id), "update")
        order = lifecycle.update_status(order_id, payload.status)
    except Exception as e:
        _raise_order_http_error(e)

    return _order_out(order)


@router.post("/v1/orders/{order_id}/notes", response_model=OrderOut)
def add_order_note(
    order_id: str,
    payload: OrderNoteRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> OrderOut:
    _ensure_user(db, principal)
    lifecycle = _lifecycle(db, principal)
    try:
        ensure_can_manage(principal, lifecycle.get(order_id), "add note to")
        order = lifecycle.add_note(
            order_id,
            author_id=principal.user_id,
            text=payload.note,
            is_admin_note=principal.is_admin,
        )
    except Exception as e:
        _raise_order_http_error(e)

    return _order_out(order)


@router.get("/v1/orders/{order_id}/events", response_model=list[EventV1])
def list_order_events(
    order_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> list[EventV1]:
    try:
        ensure_can_manage(principal, _lifecycle(db, principal).get(order_id), "audit")
    except Exception as e:
        _raise_order_http_error(e)

    events = (
        db.query(EventLog)
        .filter(EventLog.entity_type == EntityTypeV1.ORDER.value, EventLog.entity_id == order_id)
        .order_by(EventLog.created_at.asc())
        .all()
    )

    return [
        EventV1(
            id=ev.id,
            actor_id=ev.actor_id,
            entity_type=EntityTypeV1(ev.entity_type),
            entity_id=ev.entity_id,
            event_type=EventTypeV1(ev.event_type),
            payload=ev.event_payload_json,
            created_at=ev.created_at.isoformat(),
        )
        for ev in events
    ]


def _lifecycle(db: Session, principal: Principal) -> OrderLifecycle:
    return OrderLifecycle(SqlOrderStore(db, actor_id=principal.user_id))


def _ensure_user(db: Session, principal: Principal) -> None:
    if db.get(User, principal.user_id) is not None:
        return

    db.add(
        User(
            id=principal.user_id,
            display_name=principal.user_id,
            user_type=principal.user_type.value,
            company_id=principal.company_id,
        )
    )
    db.commit()


def _page(records: list[OrderRecord], total: int, page: int, limit: int) -> OrderPage:
    return OrderPage(
        orders=[_order_out(r) for r in records],
        total_pages=math.ceil(total / limit),
        current_page=page,
        total_orders=total,
    )


def _order_out(order: OrderRecord) -> OrderOut:
    return OrderOut(
        id=order.id,
        buyer_id=order.buyer_id,
        company_id=order.company_id,
        lines=[
            OrderLineOut(
                product_id=ln.product_id,
                name=ln.name,
                quantity=ln.quantity,
                unit_price=round_money(ln.unit_price),
                line_total=round_money(ln.line_total),
                image=ln.image,
                company_id=ln.company_id,
            )
            for ln in order.lines
        ],
        shipping_address=order.shipping_address,
        payment_method=order.payment_method,
        payment_result=order.payment_result,
        items_price=round_money(order.items_price),
        tax_price=round_money(order.tax_price),
        shipping_price=round_money(order.shipping_price),
        total_price=round_money(order.total_price),
        status=order.status,
        is_paid=order.is_paid,
        paid_at=order.paid_at.isoformat() if order.paid_at else None,
        is_delivered=order.is_delivered,
        delivered_at=order.delivered_at.isoformat() if order.delivered_at else None,
        notes=[
            OrderNoteOut(
                author_id=n.author_id,
                text=n.text,
                is_admin_note=n.is_admin_note,
                created_at=n.created_at.isoformat(),
            )
            for n in order.notes
        ],
        created_at=order.created_at.isoformat(),
    )
