"""
Delivery service.

Enregistre une réception sur un PO puis, dans la même transaction :
    1. reconcile() de chaque demande référencée par les lignes du PO
    2. règle de clôture du PO
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.db.models.core_types import DeliveryCondition
from siteproc.app.db.models.models_v1 import (
    Delivery,
    DeliveryItem,
    PurchaseOrder,
    PurchaseOrderItem,
    utcnow,
)
from siteproc.services.actor import Actor
from siteproc.services.audit import record_audit
from siteproc.services.errors import DomainValidationError, InvalidStateError, NotFoundError
from siteproc.services.reconciliation import (
    close_if_complete,
    reconcile_many,
    request_ids_for_order,
)
from siteproc.services.state_machine import StatusChange
from siteproc.services.transactions import unit_of_work

logger = logging.getLogger(__name__)


@dataclass
class DeliveryItemInput:
    purchase_order_item_id: int
    quantity_delivered: Decimal
    condition: DeliveryCondition = DeliveryCondition.good
    notes: str | None = None


@dataclass
class DeliveryInput:
    purchase_order_id: int
    items: list[DeliveryItemInput] = field(default_factory=list)
    delivered_date: datetime | None = None
    notes: str | None = None


@dataclass
class DeliveryResult:
    delivery: Delivery
    items: list[DeliveryItem]
    status_changes: list[StatusChange]
    purchase_order_closed: bool


def validate_delivery_input(payload: DeliveryInput) -> None:
    if not payload.items:
        raise DomainValidationError("A delivery needs at least one item")
    for idx, item in enumerate(payload.items, start=1):
        if item.quantity_delivered is None or Decimal(str(item.quantity_delivered)) <= 0:
            raise DomainValidationError(f"Item {idx}: delivered quantity must be positive")


def record_delivery(db: Session, *, actor: Actor, payload: DeliveryInput) -> DeliveryResult:
    validate_delivery_input(payload)

    with unit_of_work(db):
        po = db.get(PurchaseOrder, payload.purchase_order_id)
        if not po:
            raise NotFoundError("PurchaseOrder", payload.purchase_order_id)

        # Toutes les lignes doivent appartenir à CE PO (contrôle avant écriture)
        for item in payload.items:
            po_item = db.get(PurchaseOrderItem, item.purchase_order_item_id)
            if not po_item:
                raise NotFoundError("PurchaseOrderItem", item.purchase_order_item_id)
            if po_item.purchase_order_id != po.id:
                raise InvalidStateError(
                    f"PO item {po_item.id} does not belong to purchase order {po.po_number}"
                )

        delivery = Delivery(
            purchase_order_id=po.id,
            received_by=actor.user_id,
            delivered_date=payload.delivered_date or utcnow(),
            notes=payload.notes,
        )
        db.add(delivery)
        db.flush()

        items = []
        for item in payload.items:
            row = DeliveryItem(
                delivery_id=delivery.id,
                purchase_order_item_id=item.purchase_order_item_id,
                quantity_delivered=Decimal(str(item.quantity_delivered)),
                condition=DeliveryCondition(item.condition or DeliveryCondition.good),
                notes=item.notes,
            )
            db.add(row)
            items.append(row)
        db.flush()

        # toutes les demandes du PO, pas seulement celles touchées par cette livraison
        changes = reconcile_many(db, request_ids_for_order(db, po.id))
        closed = close_if_complete(db, po.id)

        record_audit(
            db,
            actor_id=actor.user_id,
            action="DELIVERY_RECORDED",
            entity_type="purchase_order",
            entity_id=po.id,
            meta={"delivery_id": delivery.id, "items": len(payload.items), "closed": closed},
        )
        for change in changes:
            record_audit(
                db,
                actor_id=actor.user_id,
                action=change.new_status.value,
                entity_type="request",
                entity_id=change.request_id,
                meta={"from": change.old_status.value, "delivery_id": delivery.id},
            )

    logger.info("Recorded delivery %s with %s items", delivery.id, len(payload.items))
    return DeliveryResult(
        delivery=delivery,
        items=items,
        status_changes=changes,
        purchase_order_closed=closed,
    )


def list_deliveries_for_order(db: Session, purchase_order_id: int) -> list[tuple[Delivery, list[DeliveryItem]]]:
    if not db.get(PurchaseOrder, purchase_order_id):
        raise NotFoundError("PurchaseOrder", purchase_order_id)

    deliveries = (
        db.execute(
            select(Delivery)
            .where(Delivery.purchase_order_id == purchase_order_id)
            .order_by(Delivery.delivered_date.desc(), Delivery.id.desc())
        )
        .scalars()
        .all()
    )
    if not deliveries:
        return []

    items = (
        db.execute(
            select(DeliveryItem)
            .where(DeliveryItem.delivery_id.in_([d.id for d in deliveries]))
            .order_by(DeliveryItem.id.asc())
        )
        .scalars()
        .all()
    )
    by_delivery: dict[int, list[DeliveryItem]] = {}
    for item in items:
        by_delivery.setdefault(item.delivery_id, []).append(item)
    return [(d, by_delivery.get(d.id, [])) for d in deliveries]
