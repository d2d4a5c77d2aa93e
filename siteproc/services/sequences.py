"""
Allocation des numéros de documents (PO, BOQ).

Le compteur (doc_type, année) est verrouillé (FOR UPDATE) puis incrémenté
dans la transaction appelante : le numéro est réservé avant d'être écrit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from siteproc.app.db.models.models_v1 import DocumentSequence

logger = logging.getLogger(__name__)

PO_DOC_TYPE = "PO"
BOQ_DOC_TYPE = "BOQ"

# largeur de la partie séquence
PO_WIDTH = 4
BOQ_WIDTH = 3


def format_document_number(prefix: str, year: int, value: int, width: int) -> str:
    return f"{prefix}-{year}-{value:0{width}d}"


def _lock_sequence(db: Session, doc_type: str, year: int) -> DocumentSequence:
    seq = (
        db.execute(
            select(DocumentSequence)
            .where(DocumentSequence.doc_type == doc_type)
            .where(DocumentSequence.year == year)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if seq:
        return seq

    seq = DocumentSequence(doc_type=doc_type, year=year, current_value=0)
    db.add(seq)
    db.flush()
    return seq


def allocate_document_number(
    db: Session,
    *,
    doc_type: str,
    width: int,
    prefix: str | None = None,
    year: int | None = None,
    is_taken: Callable[[str], bool] | None = None,
) -> str:
    """
    Réserve le prochain numéro {prefix}-{YYYY}-{SEQ}.

    is_taken permet de sauter les numéros déjà présents (données importées
    hors séquence) : le compteur avance jusqu'au premier numéro libre.
    """
    year = year or datetime.now(timezone.utc).year
    seq = _lock_sequence(db, doc_type, year)

    while True:
        seq.current_value += 1
        number = format_document_number(prefix or doc_type, year, seq.current_value, width)
        if is_taken is None or not is_taken(number):
            break
        logger.debug("Document number %s already used, skipping", number)

    db.flush()
    return number
