"""
Création des demandes (BOQ).

Validation complète AVANT toute écriture, puis contrôle doublons, réservation
du code BOQ, création demande + lignes + audit, le tout dans une seule
transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.db.models.core_types import (
    MaterialStatus,
    Priority,
    RateEstimateType,
    RequestStatus,
    ResourceType,
)
from siteproc.app.db.models.models_v1 import Material, Project, Request, Site, as_aware_utc, as_naive_utc
from siteproc.services.actor import Actor
from siteproc.services.audit import list_audit_entries, record_audit
from siteproc.services.duplicates import find_duplicates
from siteproc.services.errors import DomainValidationError, DuplicateRequestError, NotFoundError
from siteproc.services.sequences import BOQ_DOC_TYPE, BOQ_WIDTH, allocate_document_number
from siteproc.services.transactions import unit_of_work

logger = logging.getLogger(__name__)


@dataclass
class MaterialItemInput:
    name: str
    quantity: Decimal
    measurement_unit: str | None = None
    rate_estimate: Decimal | None = None
    rate_estimate_type: RateEstimateType = RateEstimateType.engineer_estimate
    resource_type: ResourceType = ResourceType.material


@dataclass
class RequestInput:
    project_id: int
    site_id: int
    title: str
    planned_start_date: datetime | None
    planned_end_date: datetime | None
    items: list[MaterialItemInput] = field(default_factory=list)
    emergency_flag: bool = False
    additional_details: str | None = None
    # explication fournie pour passer outre un doublon détecté
    duplicate_explanation: str | None = None


def validate_request_input(payload: RequestInput) -> None:
    if not payload.title or not payload.title.strip():
        raise DomainValidationError("Request title is required")

    if payload.planned_start_date is None or payload.planned_end_date is None:
        raise DomainValidationError("Planned start and end dates are required")
    # bornes aware et naive mélangées : une borne naive est lue comme UTC
    if as_naive_utc(payload.planned_start_date) >= as_naive_utc(payload.planned_end_date):
        raise DomainValidationError("Planned start date must be before planned end date")

    if not payload.items:
        raise DomainValidationError("A request needs at least one material item")

    for idx, item in enumerate(payload.items, start=1):
        if not item.name or not item.name.strip():
            raise DomainValidationError(f"Item {idx}: material name is required")
        if item.quantity is None or Decimal(str(item.quantity)) <= 0:
            raise DomainValidationError(f"Item {idx}: quantity must be positive")
        if item.rate_estimate is not None and Decimal(str(item.rate_estimate)) < 0:
            raise DomainValidationError(f"Item {idx}: rate estimate must not be negative")


def _boq_code_taken(db: Session, code: str) -> bool:
    return db.execute(
        select(Request.id).where(Request.boq_reference_code == code)
    ).first() is not None


def _create_single_request(db: Session, actor: Actor, payload: RequestInput) -> Request:
    validate_request_input(payload)

    project = db.get(Project, payload.project_id)
    if not project:
        raise NotFoundError("Project", payload.project_id)

    site = db.get(Site, payload.site_id)
    if not site:
        raise NotFoundError("Site", payload.site_id)
    if site.project_id != project.id:
        raise DomainValidationError(f"Site {site.id} does not belong to project {project.id}")

    # flush : les demandes précédentes du même lot sont visibles pour le contrôle doublons
    db.flush()
    warnings = find_duplicates(
        db,
        site.id,
        [item.name for item in payload.items],
        payload.planned_start_date,
        payload.planned_end_date,
    )

    explanation = (payload.duplicate_explanation or "").strip()
    if warnings and not explanation:
        raise DuplicateRequestError(warnings)

    request = Request(
        project_id=project.id,
        site_id=site.id,
        created_by=actor.user_id,
        title=payload.title.strip(),
        planned_start_date=as_aware_utc(payload.planned_start_date),
        planned_end_date=as_aware_utc(payload.planned_end_date),
        emergency_flag=bool(payload.emergency_flag),
        priority=Priority.high if payload.emergency_flag else Priority.normal,
        status=RequestStatus.submitted,
        additional_details=payload.additional_details,
        boq_reference_code=allocate_document_number(
            db,
            doc_type=BOQ_DOC_TYPE,
            width=BOQ_WIDTH,
            is_taken=lambda code: _boq_code_taken(db, code),
        ),
    )
    if warnings:
        request.is_duplicate_flagged = True
        request.duplicate_explanation = explanation
        request.duplicate_of_request_id = warnings[0].request_id
        logger.warning(
            "Request '%s' created despite %s duplicate warning(s), first match=%s",
            request.title,
            len(warnings),
            warnings[0].request_id,
        )

    db.add(request)
    db.flush()

    for item in payload.items:
        db.add(
            Material(
                request_id=request.id,
                name=item.name.strip(),
                quantity=Decimal(str(item.quantity)),
                measurement_unit=item.measurement_unit,
                rate_estimate=Decimal(str(item.rate_estimate)) if item.rate_estimate is not None else None,
                rate_estimate_type=RateEstimateType(item.rate_estimate_type),
                resource_type=ResourceType(item.resource_type),
                status=MaterialStatus.pending,
                revision_number=1,
            )
        )

    record_audit(
        db,
        actor_id=actor.user_id,
        action="CREATED",
        entity_type="request",
        entity_id=request.id,
        meta={
            "items": len(payload.items),
            "boq_reference_code": request.boq_reference_code,
            "duplicate_of": request.duplicate_of_request_id,
        },
    )
    db.flush()
    return request


def create_request(db: Session, *, actor: Actor, payload: RequestInput) -> Request:
    with unit_of_work(db):
        request = _create_single_request(db, actor, payload)

    logger.info("Created request %s (%s)", request.id, request.boq_reference_code)
    return request


def create_requests(db: Session, *, actor: Actor, payloads: list[RequestInput]) -> list[Request]:
    """Création par lot : tout ou rien."""
    if not payloads:
        raise DomainValidationError("No requests to create")

    with unit_of_work(db):
        requests = [_create_single_request(db, actor, payload) for payload in payloads]

    logger.info("Created %s requests", len(requests))
    return requests


def get_request(db: Session, request_id: int) -> Request:
    request = db.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)
    return request


def list_request_history(db: Session, request_id: int):
    get_request(db, request_id)
    return list_audit_entries(db, entity_type="request", entity_id=request_id)
