"""
Approbation des lignes (matériaux / main d'oeuvre) d'une demande.

Chaque ligne est approuvée ou rejetée indépendamment ; le statut de la
demande est ensuite ré-agrégé depuis l'ensemble des statuts de lignes.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.db.models.core_types import MaterialStatus, RequestStatus
from siteproc.app.db.models.models_v1 import Material, Request
from siteproc.services.actor import Actor
from siteproc.services.audit import record_audit
from siteproc.services.errors import DomainValidationError, InvalidStateError, NotFoundError
from siteproc.services.state_machine import APPROVAL_PHASE, StatusChange, apply_request_transition
from siteproc.services.transactions import unit_of_work

logger = logging.getLogger(__name__)


def aggregate_material_statuses(statuses: Iterable[MaterialStatus]) -> RequestStatus | None:
    """
    any PENDING            -> PENDING
    all APPROVED           -> APPROVED
    all REJECTED           -> REJECTED
    mix APPROVED/REJECTED  -> PARTIALLY_APPROVED
    aucune ligne           -> None
    """
    statuses = list(statuses)
    if not statuses:
        return None
    if any(s == MaterialStatus.pending for s in statuses):
        return RequestStatus.pending
    if all(s == MaterialStatus.approved for s in statuses):
        return RequestStatus.approved
    if all(s == MaterialStatus.rejected for s in statuses):
        return RequestStatus.rejected
    return RequestStatus.partially_approved


def list_request_materials(db: Session, request_id: int) -> list[Material]:
    return (
        db.execute(
            select(Material)
            .where(Material.request_id == request_id)
            .order_by(Material.id.asc())
        )
        .scalars()
        .all()
    )


def aggregate_approval(db: Session, request_id: int) -> StatusChange | None:
    """Recalcule le statut d'approbation ; aucune écriture si inchangé."""
    request = db.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    db.flush()
    new_status = aggregate_material_statuses(m.status for m in list_request_materials(db, request_id))
    if new_status is None or new_status == request.status:
        return None

    change = apply_request_transition(request, new_status)
    db.flush()
    return change


def _load_material_for_request(db: Session, request_id: int, material_id: int) -> tuple[Request, Material]:
    request = db.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    material = db.get(Material, material_id)
    if not material:
        raise NotFoundError("Material", material_id)

    if material.request_id != request.id:
        raise InvalidStateError(f"Material {material_id} does not belong to request {request_id}")

    if request.status not in APPROVAL_PHASE:
        raise InvalidStateError(
            f"Request {request_id} is {request.status.value}; materials can no longer be reviewed"
        )
    return request, material


def update_material_status(
    db: Session,
    *,
    actor: Actor,
    request_id: int,
    material_id: int,
    status: MaterialStatus,
    comment: str | None = None,
) -> Material:
    """Approuve / rejette une ligne puis ré-agrège le statut de la demande."""
    status = MaterialStatus(status)
    if status == MaterialStatus.pending:
        raise DomainValidationError("Material status must be APPROVED or REJECTED")

    with unit_of_work(db):
        request, material = _load_material_for_request(db, request_id, material_id)

        material.status = status
        if comment is not None and comment.strip():
            material.comment = comment.strip()

        record_audit(
            db,
            actor_id=actor.user_id,
            action=f"MATERIAL_{status.value}",
            entity_type="request",
            entity_id=request.id,
            meta={"material_id": material.id, "material": material.name, "comment": comment},
        )

        aggregate_approval(db, request.id)

    logger.info("Material %s of request %s set to %s", material_id, request_id, status.value)
    return material


def correct_material(
    db: Session,
    *,
    actor: Actor,
    request_id: int,
    material_id: int,
    name: str | None = None,
    quantity: Decimal | None = None,
    measurement_unit: str | None = None,
    rate_estimate: Decimal | None = None,
    comment: str | None = None,
) -> Material:
    """
    Correction d'une ligne rejetée : retour en PENDING, revision_number + 1,
    puis ré-agrégation (une demande REJECTED repasse en PENDING).
    """
    if name is not None and not name.strip():
        raise DomainValidationError("Material name must not be blank")
    if quantity is not None and Decimal(str(quantity)) <= 0:
        raise DomainValidationError("Material quantity must be positive")
    if rate_estimate is not None and Decimal(str(rate_estimate)) < 0:
        raise DomainValidationError("Rate estimate must not be negative")

    with unit_of_work(db):
        request, material = _load_material_for_request(db, request_id, material_id)
        if material.status != MaterialStatus.rejected:
            raise InvalidStateError(
                f"Material {material_id} is {material.status.value}; only rejected materials can be corrected"
            )

        if name is not None:
            material.name = name.strip()
        if quantity is not None:
            material.quantity = Decimal(str(quantity))
        if measurement_unit is not None:
            material.measurement_unit = measurement_unit
        if rate_estimate is not None:
            material.rate_estimate = Decimal(str(rate_estimate))
        material.comment = comment.strip() if comment and comment.strip() else None

        material.status = MaterialStatus.pending
        material.revision_number += 1

        record_audit(
            db,
            actor_id=actor.user_id,
            action="MATERIAL_REVISED",
            entity_type="request",
            entity_id=request.id,
            meta={"material_id": material.id, "revision": material.revision_number},
        )

        aggregate_approval(db, request.id)

    logger.info("Material %s of request %s revised (rev %s)", material_id, request_id, material.revision_number)
    return material
