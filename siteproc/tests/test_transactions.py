from decimal import Decimal

import pytest
from sqlalchemy import func, select

from siteproc.app.db.models.core_types import Role
from siteproc.app.db.models.models_v1 import Material, User
from siteproc.services.errors import ConcurrencyConflictError, DomainValidationError
from siteproc.services.transactions import unit_of_work


def test_unique_collision_is_retryable(db_session, engineer):
    """
    GIVEN un email déjà utilisé
    WHEN un second utilisateur est inséré avec le même email
    THEN ConcurrencyConflictError (retryable), rollback complet
    """
    with pytest.raises(ConcurrencyConflictError) as exc:
        with unit_of_work(db_session):
            db_session.add(User(name="CLONE", email=engineer.email, role=Role.engineer, active=True))

    assert exc.value.retryable is True
    assert db_session.scalar(select(func.count()).select_from(User)) == 1


def test_check_violation_is_not_retryable(db_session, approved_request):
    """
    GIVEN une ligne de quantité nulle (CHECK quantity > 0)
    THEN DomainValidationError : un retry ne changerait rien
    """
    with pytest.raises(DomainValidationError):
        with unit_of_work(db_session):
            db_session.add(Material(request_id=approved_request.id, name="Ghost", quantity=Decimal("0")))

    count = db_session.scalar(
        select(func.count()).select_from(Material).where(Material.request_id == approved_request.id)
    )
    assert count == 1
