"""
Erreurs métier du moteur procurement.

Les services lèvent ces exceptions ; la couche HTTP les traduit en réponses
(voir siteproc.app.api.errors). Aucune n'est retentée en interne.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from siteproc.services.duplicates import DuplicateWarning


class ProcurementError(Exception):
    """Base de toutes les erreurs métier."""


class NotFoundError(ProcurementError):
    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(ProcurementError):
    """Transition illégale ou opération incompatible avec l'état courant."""


class DomainValidationError(ProcurementError):
    """Entrée rejetée AVANT toute mutation."""


class DuplicateRequestError(ProcurementError):
    """
    Issue attendue (pas une panne) : la demande chevauche des demandes
    existantes sur le même site. L'appelant abandonne ou renvoie avec une
    explication.
    """

    def __init__(self, warnings: Sequence["DuplicateWarning"]):
        super().__init__(
            f"{len(warnings)} potential duplicate request(s) found; "
            "provide an explanation to proceed"
        )
        self.warnings = list(warnings)


class ConcurrencyConflictError(ProcurementError):
    """Conflit d'écriture concurrente (version, numéro unique) : retentable."""

    retryable = True
