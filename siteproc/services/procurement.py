"""
Procurement service.

Ce module orchestre la création des bons de commande (PO) mais ne contient
AUCUNE règle de dérivation de statut.

Toute la logique de statut est centralisée dans :
    siteproc.services.reconciliation
    siteproc.services.state_machine
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.db.models.core_types import POStatus, RequestStatus
from siteproc.app.db.models.models_v1 import (
    Project,
    PurchaseOrder,
    PurchaseOrderItem,
    Request,
    Site,
)
from siteproc.services.actor import Actor
from siteproc.services.audit import record_audit
from siteproc.services.errors import DomainValidationError, InvalidStateError, NotFoundError
from siteproc.services.reconciliation import (
    delivered_by_order_item,
    load_ledger,
    reconcile_many,
)
from siteproc.services.sequences import PO_DOC_TYPE, PO_WIDTH, allocate_document_number
from siteproc.services.state_machine import ORDERABLE_STATUSES, apply_request_transition
from siteproc.services.transactions import unit_of_work

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class PurchaseOrderItemInput:
    request_id: int
    material_display_name: str
    ordered_qty: Decimal
    unit: str
    unit_price: Decimal


@dataclass
class PurchaseOrderInput:
    project_id: int
    items: list[PurchaseOrderItemInput] = field(default_factory=list)
    site_id: int | None = None
    vendor_name: str | None = None
    notes: str | None = None


def line_total(ordered_qty: Decimal, unit_price: Decimal) -> Decimal:
    return (Decimal(str(ordered_qty)) * Decimal(str(unit_price))).quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_purchase_order_input(payload: PurchaseOrderInput) -> None:
    if not payload.items:
        raise DomainValidationError("A purchase order needs at least one item")

    for idx, item in enumerate(payload.items, start=1):
        if not item.material_display_name or not item.material_display_name.strip():
            raise DomainValidationError(f"Item {idx}: material display name is required")
        if not item.unit or not item.unit.strip():
            raise DomainValidationError(f"Item {idx}: unit is required")
        if item.ordered_qty is None or Decimal(str(item.ordered_qty)) <= 0:
            raise DomainValidationError(f"Item {idx}: ordered quantity must be positive")
        if item.unit_price is None or Decimal(str(item.unit_price)) < 0:
            raise DomainValidationError(f"Item {idx}: unit price must not be negative")


def _po_number_taken(db: Session, number: str) -> bool:
    return db.execute(
        select(PurchaseOrder.id).where(PurchaseOrder.po_number == number)
    ).first() is not None


def _load_orderable_requests(db: Session, payload: PurchaseOrderInput) -> dict[int, Request]:
    requests: dict[int, Request] = {}
    for item in payload.items:
        if item.request_id in requests:
            continue
        request = db.get(Request, item.request_id)
        if not request:
            raise NotFoundError("Request", item.request_id)
        if request.project_id != payload.project_id:
            raise InvalidStateError(
                f"Request {request.id} belongs to project {request.project_id}, not {payload.project_id}"
            )
        if request.status not in ORDERABLE_STATUSES:
            raise InvalidStateError(
                f"Request {request.id} is not approved for ordering (status {request.status.value})"
            )
        requests[request.id] = request
    return requests


def create_purchase_order(db: Session, *, actor: Actor, payload: PurchaseOrderInput) -> PurchaseOrder:
    """
    Crée un PO sur des demandes approuvées.

    Post-conditions :
    - chaque demande APPROVED référencée passe en ORDERED (une seule fois)
    - reconcile() sur chaque demande distincte
    """
    validate_purchase_order_input(payload)

    with unit_of_work(db):
        # FK checks (fail fast, avant toute écriture)
        if not db.get(Project, payload.project_id):
            raise NotFoundError("Project", payload.project_id)
        if payload.site_id is not None and not db.get(Site, payload.site_id):
            raise NotFoundError("Site", payload.site_id)

        requests = _load_orderable_requests(db, payload)

        po = PurchaseOrder(
            po_number=allocate_document_number(
                db,
                doc_type=PO_DOC_TYPE,
                width=PO_WIDTH,
                is_taken=lambda number: _po_number_taken(db, number),
            ),
            project_id=payload.project_id,
            site_id=payload.site_id,
            created_by=actor.user_id,
            status=POStatus.open,
            vendor_name=payload.vendor_name,
            notes=payload.notes,
        )
        db.add(po)
        db.flush()  # get po.id

        for item in payload.items:
            db.add(
                PurchaseOrderItem(
                    purchase_order_id=po.id,
                    request_id=item.request_id,
                    material_display_name=item.material_display_name.strip(),
                    ordered_qty=Decimal(str(item.ordered_qty)),
                    unit=item.unit.strip(),
                    unit_price=Decimal(str(item.unit_price)),
                    total_price=line_total(item.ordered_qty, item.unit_price),
                )
            )
        db.flush()

        for request in requests.values():
            if request.status == RequestStatus.approved:
                apply_request_transition(
                    request,
                    RequestStatus.ordered,
                    ledger=load_ledger(db, request.id),
                )

        reconcile_many(db, requests.keys())

        record_audit(
            db,
            actor_id=actor.user_id,
            action="PO_CREATED",
            entity_type="purchase_order",
            entity_id=po.id,
            meta={"po_number": po.po_number, "requests": sorted(requests)},
        )
        for request_id in requests:
            record_audit(
                db,
                actor_id=actor.user_id,
                action="ORDERED",
                entity_type="request",
                entity_id=request_id,
                meta={"po_number": po.po_number},
            )

    logger.info("Created purchase order %s with %s items", po.po_number, len(payload.items))
    return po


# ---------- Lecture ----------
def get_purchase_order(db: Session, purchase_order_id: int) -> PurchaseOrder:
    po = db.get(PurchaseOrder, purchase_order_id)
    if not po:
        raise NotFoundError("PurchaseOrder", purchase_order_id)
    return po


def list_purchase_order_items(db: Session, purchase_order_id: int) -> list[tuple[PurchaseOrderItem, Decimal]]:
    """Lignes du PO avec la quantité déjà livrée."""
    get_purchase_order(db, purchase_order_id)
    items = (
        db.execute(
            select(PurchaseOrderItem)
            .where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
            .order_by(PurchaseOrderItem.id.asc())
        )
        .scalars()
        .all()
    )
    delivered = delivered_by_order_item(db, purchase_order_id)
    return [(item, delivered.get(item.id, Decimal("0"))) for item in items]


def list_project_purchase_orders(db: Session, project_id: int) -> list[PurchaseOrder]:
    if not db.get(Project, project_id):
        raise NotFoundError("Project", project_id)
    return (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.project_id == project_id)
            .order_by(PurchaseOrder.id.desc())
        )
        .scalars()
        .all()
    )
