from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from siteproc.app.db.models.models_v1 import (
    Request,
    Material,
    PurchaseOrder,
    PurchaseOrderItem,
    DeliveryItem,
)
from siteproc.app.db.models.core_types import POStatus, RequestStatus
from siteproc.services.errors import NotFoundError
from siteproc.services.state_machine import (
    StatusChange,
    apply_purchase_order_transition,
    apply_request_transition,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class QuantityLedger:
    """Les trois compteurs d'une demande (chacun vient d'un agrégat différent)."""

    requested: Decimal
    ordered: Decimal
    delivered: Decimal


# ---------- Règle pure ----------
def derive_request_status(
    requested: Decimal,
    ordered: Decimal,
    delivered: Decimal,
    *,
    request_id: int | None = None,
) -> RequestStatus | None:
    """
    Statut dérivé des trois ledgers. Première règle qui matche :

        ordered == 0                          -> None (rien de commandé)
        delivered == 0 et ordered > 0         -> ORDERED
        0 < delivered < ordered               -> PARTIALLY_DELIVERED
        delivered >= ordered, ordered < req.  -> PARTIALLY_DELIVERED (sous-commande)
        delivered >= ordered >= requested     -> DELIVERED

    None = statut inchangé.
    """
    requested = _as_decimal(requested)
    ordered = _as_decimal(ordered)
    delivered = _as_decimal(delivered)

    if ordered == 0:
        return None

    if delivered == 0 and ordered > 0:
        return RequestStatus.ordered

    if 0 < delivered < ordered:
        return RequestStatus.partially_delivered

    if delivered >= ordered and ordered < requested:
        logger.warning(
            "Request %s under-ordered: requested=%s ordered=%s delivered=%s",
            request_id,
            requested,
            ordered,
            delivered,
        )
        return RequestStatus.partially_delivered

    if delivered >= ordered and ordered >= requested:
        return RequestStatus.delivered

    return None


def is_order_complete(lines: Iterable[tuple[Decimal, Decimal]]) -> bool:
    """True si chaque ligne (ordered, delivered) est entièrement livrée."""
    return all(_as_decimal(delivered) >= _as_decimal(ordered) for ordered, delivered in lines)


# ---------- Ledgers (sources de vérité) ----------
def requested_qty(db: Session, request_id: int) -> Decimal:
    value = db.execute(
        select(func.coalesce(func.sum(Material.quantity), 0)).where(Material.request_id == request_id)
    ).scalar_one()
    return _as_decimal(value)


def ordered_qty(db: Session, request_id: int) -> Decimal:
    value = db.execute(
        select(func.coalesce(func.sum(PurchaseOrderItem.ordered_qty), 0)).where(
            PurchaseOrderItem.request_id == request_id
        )
    ).scalar_one()
    return _as_decimal(value)


def delivered_qty(db: Session, request_id: int) -> Decimal:
    value = db.execute(
        select(func.coalesce(func.sum(DeliveryItem.quantity_delivered), 0))
        .join(PurchaseOrderItem, PurchaseOrderItem.id == DeliveryItem.purchase_order_item_id)
        .where(PurchaseOrderItem.request_id == request_id)
    ).scalar_one()
    return _as_decimal(value)


def load_ledger(db: Session, request_id: int) -> QuantityLedger:
    return QuantityLedger(
        requested=requested_qty(db, request_id),
        ordered=ordered_qty(db, request_id),
        delivered=delivered_qty(db, request_id),
    )


def delivered_by_order_item(db: Session, purchase_order_id: int) -> dict[int, Decimal]:
    """Quantité livrée par ligne de PO (0 pour les lignes sans livraison)."""
    item_ids = db.execute(
        select(PurchaseOrderItem.id).where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
    ).scalars().all()
    if not item_ids:
        return {}

    rows = db.execute(
        select(
            DeliveryItem.purchase_order_item_id,
            func.coalesce(func.sum(DeliveryItem.quantity_delivered), 0).label("delivered"),
        )
        .where(DeliveryItem.purchase_order_item_id.in_(item_ids))
        .group_by(DeliveryItem.purchase_order_item_id)
    ).all()

    delivered = {int(item_id): _as_decimal(qty) for item_id, qty in rows}
    return {int(item_id): delivered.get(int(item_id), ZERO) for item_id in item_ids}


def request_ids_for_order(db: Session, purchase_order_id: int) -> list[int]:
    """Demandes distinctes référencées par les lignes du PO (ordre des lignes)."""
    rows = db.execute(
        select(PurchaseOrderItem.request_id)
        .where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
        .order_by(PurchaseOrderItem.id.asc())
    ).scalars().all()
    return list(dict.fromkeys(int(rid) for rid in rows))


# ---------- Application ----------
def reconcile(db: Session, request_id: int) -> StatusChange | None:
    """
    Recalcule le statut d'une demande depuis ses trois ledgers.

    Propriétés :
    - déterministe (sommes recalculées depuis les lignes, jamais de compteur cache)
    - idempotent (aucune écriture si le statut ne change pas)
    - ne commit pas : s'exécute dans la transaction de l'appelant
    """
    request = db.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    db.flush()
    ledger = load_ledger(db, request_id)
    logger.debug(
        "Request %s: requested=%s ordered=%s delivered=%s",
        request_id,
        ledger.requested,
        ledger.ordered,
        ledger.delivered,
    )

    new_status = derive_request_status(
        ledger.requested,
        ledger.ordered,
        ledger.delivered,
        request_id=request_id,
    )
    if new_status is None or new_status == request.status:
        return None

    change = apply_request_transition(request, new_status, ledger=ledger)
    db.flush()
    return change


def reconcile_many(db: Session, request_ids: Iterable[int]) -> list[StatusChange]:
    changes = []
    for rid in dict.fromkeys(request_ids):
        change = reconcile(db, rid)
        if change is not None:
            changes.append(change)
    return changes


def close_if_complete(db: Session, purchase_order_id: int) -> bool:
    """
    OPEN -> CLOSED quand toutes les lignes sont livrées (delivered >= ordered).

    Retourne True uniquement si la transition a eu lieu. CLOSED est terminal.
    """
    po = db.get(PurchaseOrder, purchase_order_id)
    if not po:
        raise NotFoundError("PurchaseOrder", purchase_order_id)

    if po.status != POStatus.open:
        return False

    db.flush()
    rows = db.execute(
        select(PurchaseOrderItem.id, PurchaseOrderItem.ordered_qty).where(
            PurchaseOrderItem.purchase_order_id == purchase_order_id
        )
    ).all()
    if not rows:
        return False

    delivered = delivered_by_order_item(db, purchase_order_id)
    lines = [(_as_decimal(qty), delivered.get(int(item_id), ZERO)) for item_id, qty in rows]
    if not is_order_complete(lines):
        return False

    apply_purchase_order_transition(po, POStatus.closed)
    db.flush()
    return True
