"""
Détection de demandes en doublon.

Une demande candidate (site, matériaux, fenêtre planifiée) est comparée aux
demandes existantes du même site dont la fenêtre chevauche la sienne ;
chaque match produit un DuplicateWarning avec le % de chevauchement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.config import settings
from siteproc.app.db.models.models_v1 import Material, Request, Site, as_naive_utc
from siteproc.services.errors import DomainValidationError
from siteproc.services.state_machine import DUPLICATE_ACTIVE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateWarning:
    request_id: int
    request_title: str
    boq_reference_code: str | None
    planned_start_date: datetime | None
    planned_end_date: datetime | None
    timeline_overlap_percentage: float
    status: str
    site_name: str | None
    overlapping_materials: list[str] = field(default_factory=list)


def normalize_material_names(names: Iterable[str | None]) -> list[str]:
    """lower-case, sans doublons, sans vides ; l'ordre d'entrée est conservé."""
    out: dict[str, None] = {}
    for name in names or ():
        if name is None:
            continue
        key = name.strip().lower()
        if key:
            out[key] = None
    return list(out)


def timeline_overlap_percentage(
    existing_start: datetime | None,
    existing_end: datetime | None,
    start: datetime | None,
    end: datetime | None,
) -> float:
    """
    % de la durée de la candidate (start/end) couverte par la fenêtre existante.

    Durées en jours entiers. Fenêtre manquante -> 100 (on préfère signaler).
    """
    if existing_start is None or existing_end is None or start is None or end is None:
        return 100.0

    existing_start = as_naive_utc(existing_start)
    existing_end = as_naive_utc(existing_end)
    start = as_naive_utc(start)
    end = as_naive_utc(end)

    overlap_start = max(existing_start, start)
    overlap_end = min(existing_end, end)

    if overlap_start > overlap_end:
        return 0.0

    overlap_days = (overlap_end - overlap_start).days
    total_days = (end - start).days

    # demande sur une seule journée
    if total_days == 0:
        return 100.0

    return overlap_days / total_days * 100.0


def _overlapping_requests(
    db: Session,
    site_id: int,
    start: datetime | None,
    end: datetime | None,
) -> list[Request]:
    stmt = (
        select(Request)
        .where(Request.site_id == site_id)
        .where(Request.status.in_(DUPLICATE_ACTIVE_STATUSES))
    )
    if start is not None and end is not None:
        # chevauchement semi-ouvert
        stmt = stmt.where(Request.planned_start_date < end).where(Request.planned_end_date > start)
    return db.execute(stmt.order_by(Request.id.asc())).scalars().all()


def _material_names_by_request(db: Session, request_ids: list[int]) -> dict[int, list[str]]:
    if not request_ids:
        return {}
    rows = db.execute(
        select(Material.request_id, Material.name)
        .where(Material.request_id.in_(request_ids))
        .order_by(Material.request_id.asc(), Material.id.asc())
    ).all()

    names: dict[int, list[str]] = {}
    for rid, name in rows:
        names.setdefault(int(rid), []).append(name)
    return names


def find_duplicates(
    db: Session,
    site_id: int,
    material_names: Iterable[str | None],
    start: datetime | None,
    end: datetime | None,
    *,
    require_material_match: bool | None = None,
) -> list[DuplicateWarning]:
    """
    Warnings pour chaque demande existante du site qui chevauche [start, end).
    Seules les demandes actives comptent (SUBMITTED, PENDING, APPROVED,
    PARTIALLY_APPROVED) : une demande rejetée ou déjà commandée ne bloque rien.

    Par défaut un warning est émis même si aucun matériau n'est commun
    (overlapping_materials vide) ; require_material_match=True filtre ces cas.
    """
    if start is not None and end is not None and as_naive_utc(start) > as_naive_utc(end):
        raise DomainValidationError("Planned start date must not be after planned end date")

    if require_material_match is None:
        require_material_match = settings.duplicate_require_material_match

    normalized = normalize_material_names(material_names)
    logger.info(
        "Checking duplicates: site_id=%s materials=%s window=%s..%s",
        site_id,
        normalized,
        start,
        end,
    )
    if not normalized:
        return []

    candidates = _overlapping_requests(db, site_id, start, end)
    if not candidates:
        return []

    site = db.get(Site, site_id)
    site_name = site.name if site else None
    names_by_request = _material_names_by_request(db, [int(r.id) for r in candidates])
    wanted = set(normalized)

    warnings: list[DuplicateWarning] = []
    for existing in candidates:
        overlapping: dict[str, str] = {}
        for name in names_by_request.get(int(existing.id), []):
            key = name.strip().lower()
            if key in wanted and key not in overlapping:
                overlapping[key] = name

        if require_material_match and not overlapping:
            continue

        warnings.append(
            DuplicateWarning(
                request_id=int(existing.id),
                request_title=existing.title,
                boq_reference_code=existing.boq_reference_code,
                planned_start_date=existing.planned_start_date,
                planned_end_date=existing.planned_end_date,
                timeline_overlap_percentage=timeline_overlap_percentage(
                    existing.planned_start_date,
                    existing.planned_end_date,
                    start,
                    end,
                ),
                status=existing.status.value,
                site_name=site_name,
                overlapping_materials=list(overlapping.values()),
            )
        )

    logger.info("Found %s potentially overlapping request(s)", len(warnings))
    return warnings
