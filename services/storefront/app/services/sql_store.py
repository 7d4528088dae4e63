from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from packages.shared.schemas.order_v1 import OrderStatusV1, PaymentMethodV1
from services.storefront.app.db.models import EventLog, Order, OrderLine, OrderNote, Product
from services.storefront.app.models.order import PaymentResultInput, ShippingAddress
from services.storefront.app.services.order_base import (
    OrderDraft,
    OrderItemLine,
    OrderNoteRecord,
    OrderRecord,
    ProductSnapshot,
)
from sqlalchemy import update
from sqlalchemy.orm import Session


def log_event(
    db: Session,
    *,
    actor_id: str | None,
    entity_type: EntityTypeV1,
    entity_id: str,
    event_type: EventTypeV1,
    event_payload: dict,
) -> None:
    db.add(
        EventLog(
            id=uuid4().hex,
            actor_id=actor_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            event_type=event_type.value,
            event_payload_json=event_payload,
        )
    )


class SqlCatalog:
    """Catalog backed by the products table.

    Every stock change is committed on its own together with its audit event.
    """

    def __init__(self, db: Session, actor_id: str | None = None) -> None:
        self._db = db
        self._actor_id = actor_id

    def find_product(self, product_id: str) -> ProductSnapshot | None:
        row = self._db.get(Product, product_id)
        if row is None:
            return None
        return ProductSnapshot(
            id=row.id,
            name=row.name,
            price=row.price,
            stock=row.stock,
            company_id=row.company_id,
            images=tuple(row.images_json or ()),
        )

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        result = self._db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=datetime.utcnow())
        )
        if result.rowcount != 1:
            self._db.rollback()
            return False

        log_event(
            self._db,
            actor_id=self._actor_id,
            entity_type=EntityTypeV1.PRODUCT,
            entity_id=product_id,
            event_type=EventTypeV1.STOCK_DECREMENTED,
            event_payload={"quantity": quantity},
        )
        self._db.commit()
        return True

    def increment_stock(self, product_id: str, quantity: int) -> None:
        self._db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=datetime.utcnow())
        )
        log_event(
            self._db,
            actor_id=self._actor_id,
            entity_type=EntityTypeV1.PRODUCT,
            entity_id=product_id,
            event_type=EventTypeV1.STOCK_RESTORED,
            event_payload={"quantity": quantity},
        )
        self._db.commit()


class SqlOrderStore:
    def __init__(self, db: Session, actor_id: str | None = None) -> None:
        self._db = db
        self._actor_id = actor_id

    def create(self, draft: OrderDraft) -> OrderRecord:
        db = self._db
        try:
            db.add(
                Order(
                    id=draft.id,
                    buyer_id=draft.buyer_id,
                    company_id=draft.company_id,
                    shipping_address_json=draft.shipping_address.model_dump(mode="json"),
                    payment_method=draft.payment_method.value,
                    items_price=draft.items_price,
                    tax_price=draft.tax_price,
                    shipping_price=draft.shipping_price,
                    total_price=draft.total_price,
                    status=OrderStatusV1.PENDING.value,
                    is_paid=False,
                    is_delivered=False,
                )
            )
            for position, line in enumerate(draft.lines):
                db.add(
                    OrderLine(
                        id=uuid4().hex,
                        order_id=draft.id,
                        position=position,
                        product_id=line.product_id,
                        name=line.name,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        image=line.image,
                        company_id=line.company_id,
                    )
                )
            log_event(
                db,
                actor_id=self._actor_id,
                entity_type=EntityTypeV1.ORDER,
                entity_id=draft.id,
                event_type=EventTypeV1.ORDER_CREATED,
                event_payload={
                    "company_id": draft.company_id,
                    "lines": len(draft.lines),
                    "total_price": draft.total_price,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        record = self.find_by_id(draft.id)
        assert record is not None
        return record

    def find_by_id(self, order_id: str) -> OrderRecord | None:
        row = self._db.get(Order, order_id)
        if row is None:
            return None
        return self._to_record(row)

    def update_status(
        self,
        order_id: str,
        status: OrderStatusV1,
        expected: frozenset[OrderStatusV1],
    ) -> bool:
        now = datetime.utcnow()
        values: dict = {"status": status.value, "updated_at": now}
        if status is OrderStatusV1.DELIVERED:
            values.update(is_delivered=True, delivered_at=now)

        result = self._db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_([s.value for s in expected]))
            .values(**values)
        )
        if result.rowcount != 1:
            self._db.rollback()
            return False

        log_event(
            self._db,
            actor_id=self._actor_id,
            entity_type=EntityTypeV1.ORDER,
            entity_id=order_id,
            event_type=EventTypeV1.ORDER_STATUS_CHANGED,
            event_payload={"status": status.value},
        )
        self._db.commit()
        return True

    def cancel(self, order_id: str, expected: frozenset[OrderStatusV1]) -> bool:
        db = self._db
        now = datetime.utcnow()
        try:
            result = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status.in_([s.value for s in expected]))
                .values(status=OrderStatusV1.CANCELLED.value, updated_at=now)
            )
            if result.rowcount != 1:
                db.rollback()
                return False

            lines = db.query(OrderLine).filter(OrderLine.order_id == order_id).all()
            for line in lines:
                db.execute(
                    update(Product)
                    .where(Product.id == line.product_id)
                    .values(stock=Product.stock + line.quantity, updated_at=now)
                )
                log_event(
                    db,
                    actor_id=self._actor_id,
                    entity_type=EntityTypeV1.PRODUCT,
                    entity_id=line.product_id,
                    event_type=EventTypeV1.STOCK_RESTORED,
                    event_payload={"quantity": line.quantity, "order_id": order_id},
                )
            log_event(
                db,
                actor_id=self._actor_id,
                entity_type=EntityTypeV1.ORDER,
                entity_id=order_id,
                event_type=EventTypeV1.ORDER_STATUS_CHANGED,
                event_payload={"status": OrderStatusV1.CANCELLED.value},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return True

    def mark_paid(self, order_id: str, payment: PaymentResultInput) -> OrderRecord | None:
        now = datetime.utcnow()
        result = self._db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status != OrderStatusV1.CANCELLED.value)
            .values(
                is_paid=True,
                paid_at=now,
                payment_result_json=payment.model_dump(mode="json"),
                updated_at=now,
            )
        )
        if result.rowcount != 1:
            self._db.rollback()
            return None

        log_event(
            self._db,
            actor_id=self._actor_id,
            entity_type=EntityTypeV1.ORDER,
            entity_id=order_id,
            event_type=EventTypeV1.ORDER_PAID,
            event_payload={"payment_id": payment.id, "status": payment.status},
        )
        self._db.commit()
        return self.find_by_id(order_id)

    def add_note(self, order_id: str, note: OrderNoteRecord) -> OrderRecord | None:
        row = self._db.get(Order, order_id)
        if row is None:
            return None

        note_id = uuid4().hex
        self._db.add(
            OrderNote(
                id=note_id,
                order_id=order_id,
                author_id=note.author_id,
                text=note.text,
                is_admin_note=note.is_admin_note,
                created_at=note.created_at,
            )
        )
        log_event(
            self._db,
            actor_id=self._actor_id,
            entity_type=EntityTypeV1.ORDER,
            entity_id=order_id,
            event_type=EventTypeV1.ORDER_NOTE_ADDED,
            event_payload={"note_id": note_id, "is_admin_note": note.is_admin_note},
        )
        self._db.commit()
        return self._to_record(row)

    def list_orders(
        self,
        *,
        buyer_id: str | None = None,
        company_id: str | None = None,
        status: OrderStatusV1 | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[OrderRecord], int]:
        q = self._db.query(Order)
        if buyer_id is not None:
            q = q.filter(Order.buyer_id == buyer_id)
        if company_id is not None:
            q = q.filter(Order.company_id == company_id)
        if status is not None:
            q = q.filter(Order.status == status.value)

        total = q.count()
        q = q.order_by(Order.created_at.desc()).offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return [self._to_record(row) for row in q.all()], total

    def _to_record(self, row: Order) -> OrderRecord:
        lines = (
            self._db.query(OrderLine)
            .filter(OrderLine.order_id == row.id)
            .order_by(OrderLine.position.asc())
            .all()
        )
        notes = (
            self._db.query(OrderNote)
            .filter(OrderNote.order_id == row.id)
            .order_by(OrderNote.created_at.asc())
            .all()
        )

        return OrderRecord(
            id=row.id,
            buyer_id=row.buyer_id,
            company_id=row.company_id,
            lines=tuple(
                OrderItemLine(
                    product_id=ln.product_id,
                    name=ln.name,
                    quantity=ln.quantity,
                    unit_price=ln.unit_price,
                    image=ln.image,
                    company_id=ln.company_id,
                )
                for ln in lines
            ),
            shipping_address=ShippingAddress.model_validate(row.shipping_address_json),
            payment_method=PaymentMethodV1(row.payment_method),
            items_price=row.items_price,
            tax_price=row.tax_price,
            shipping_price=row.shipping_price,
            total_price=row.total_price,
            status=OrderStatusV1(row.status),
            created_at=row.created_at,
            is_paid=row.is_paid,
            paid_at=row.paid_at,
            payment_result=(
                PaymentResultInput.model_validate(row.payment_result_json)
                if row.payment_result_json
                else None
            ),
            is_delivered=row.is_delivered,
            delivered_at=row.delivered_at,
            notes=tuple(
                OrderNoteRecord(
                    author_id=n.author_id,
                    text=n.text,
                    is_admin_note=n.is_admin_note,
                    created_at=n.created_at,
                )
                for n in notes
            ),
        )
