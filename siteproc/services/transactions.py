from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from siteproc.services.errors import ConcurrencyConflictError, DomainValidationError

logger = logging.getLogger(__name__)

# SQLSTATE unique_violation (PostgreSQL)
UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """Collision sur une contrainte UNIQUE (seul cas qu'un retry peut résoudre)."""
    orig = exc.orig
    if getattr(orig, "sqlstate", None) == UNIQUE_VIOLATION:
        return True
    # sqlite3 n'expose pas de SQLSTATE
    return "UNIQUE constraint failed" in str(orig)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Une opération orchestrée = une transaction.

    - commit si tout passe
    - rollback sur n'importe quelle erreur (aucune écriture partielle visible)
    - version périmée / numéro unique en collision -> ConcurrencyConflictError
    - CHECK / FK violée -> DomainValidationError (un retry ne changerait rien)
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning("Optimistic lock conflict: %s", e)
        raise ConcurrencyConflictError("Concurrent update detected, retry the operation") from e
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            logger.warning("Unique constraint conflict: %s", e.orig)
            raise ConcurrencyConflictError("Conflicting write detected, retry the operation") from e
        logger.warning("Constraint violation: %s", e.orig)
        raise DomainValidationError("Write rejected by a database constraint") from e
    except Exception:
        db.rollback()
        raise
