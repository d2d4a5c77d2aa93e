"""
Machines à états explicites (Request, PurchaseOrder).

Chaque changement de statut passe par apply_*_transition : la table dit
quelles transitions existent, les guards disent si le ledger les autorise.
Une transition absente de la table lève InvalidStateError (jamais de no-op
silencieux).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from siteproc.app.db.models.core_types import POStatus, RequestStatus
from siteproc.app.db.models.models_v1 import PurchaseOrder, Request
from siteproc.services.errors import InvalidStateError

if TYPE_CHECKING:
    from siteproc.services.reconciliation import QuantityLedger

logger = logging.getLogger(__name__)


APPROVAL_PHASE = frozenset(
    {
        RequestStatus.submitted,
        RequestStatus.pending,
        RequestStatus.approved,
        RequestStatus.rejected,
        RequestStatus.partially_approved,
    }
)

# Statuts acceptés comme cible d'un bon de commande
ORDERABLE_STATUSES = frozenset(
    {
        RequestStatus.approved,
        RequestStatus.ordered,
        RequestStatus.partially_delivered,
    }
)

# Demandes encore "vivantes" pour le contrôle doublons (REJECTED et phase livraison exclues)
DUPLICATE_ACTIVE_STATUSES = frozenset(
    {
        RequestStatus.submitted,
        RequestStatus.pending,
        RequestStatus.approved,
        RequestStatus.partially_approved,
    }
)

REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.submitted: frozenset(
        {
            RequestStatus.pending,
            RequestStatus.approved,
            RequestStatus.rejected,
            RequestStatus.partially_approved,
        }
    ),
    RequestStatus.pending: frozenset(
        {
            RequestStatus.approved,
            RequestStatus.rejected,
            RequestStatus.partially_approved,
        }
    ),
    RequestStatus.approved: frozenset(
        {
            RequestStatus.pending,
            RequestStatus.rejected,
            RequestStatus.partially_approved,
            RequestStatus.ordered,
        }
    ),
    RequestStatus.rejected: frozenset(
        {
            RequestStatus.pending,
            RequestStatus.approved,
            RequestStatus.partially_approved,
        }
    ),
    RequestStatus.partially_approved: frozenset(
        {
            RequestStatus.pending,
            RequestStatus.approved,
            RequestStatus.rejected,
        }
    ),
    RequestStatus.ordered: frozenset(
        {
            RequestStatus.partially_delivered,
            RequestStatus.delivered,
        }
    ),
    RequestStatus.partially_delivered: frozenset({RequestStatus.delivered}),
    RequestStatus.delivered: frozenset(),
}

# Pas de ré-ouverture d'un PO (question ouverte, volontairement absent)
PURCHASE_ORDER_TRANSITIONS: dict[POStatus, frozenset[POStatus]] = {
    POStatus.open: frozenset({POStatus.closed}),
    POStatus.closed: frozenset(),
}


@dataclass(frozen=True)
class StatusChange:
    request_id: int
    old_status: RequestStatus
    new_status: RequestStatus


# ---------- Guards (phase réconciliation) ----------
def _guard_ordered(ledger: "QuantityLedger") -> bool:
    return ledger.ordered > 0


def _guard_partially_delivered(ledger: "QuantityLedger") -> bool:
    return ledger.ordered > 0 and ledger.delivered > 0


def _guard_delivered(ledger: "QuantityLedger") -> bool:
    return ledger.ordered > 0 and ledger.delivered >= ledger.ordered >= ledger.requested


REQUEST_GUARDS: dict[RequestStatus, Callable[["QuantityLedger"], bool]] = {
    RequestStatus.ordered: _guard_ordered,
    RequestStatus.partially_delivered: _guard_partially_delivered,
    RequestStatus.delivered: _guard_delivered,
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in REQUEST_TRANSITIONS.get(current, frozenset())


def apply_request_transition(
    request: Request,
    target: RequestStatus,
    *,
    ledger: "QuantityLedger | None" = None,
) -> StatusChange:
    current = request.status
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Request {request.id}: illegal transition {current.value} -> {target.value}"
        )

    guard = REQUEST_GUARDS.get(target)
    if guard is not None:
        if ledger is None:
            raise InvalidStateError(
                f"Request {request.id}: transition to {target.value} requires quantity ledger"
            )
        if not guard(ledger):
            raise InvalidStateError(
                f"Request {request.id}: ledger {ledger} does not allow {target.value}"
            )

    request.status = target
    logger.info("Request %s status %s -> %s", request.id, current.value, target.value)
    return StatusChange(request_id=request.id, old_status=current, new_status=target)


def apply_purchase_order_transition(po: PurchaseOrder, target: POStatus) -> None:
    current = po.status
    if target not in PURCHASE_ORDER_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateError(
            f"Purchase order {po.po_number}: illegal transition {current.value} -> {target.value}"
        )
    po.status = target
    logger.info("Purchase order %s status %s -> %s", po.po_number, current.value, target.value)
