from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from siteproc.app.db.base import Base
from siteproc.app.db.models import models_v1  # noqa: F401  (tables sur Base.metadata)
from siteproc.app.db.models.core_types import MaterialStatus, Role
from siteproc.app.db.models.models_v1 import Project, Site, User
from siteproc.services.actor import Actor
from siteproc.services.approval import list_request_materials, update_material_status
from siteproc.services.requests import MaterialItemInput, RequestInput, create_request
from siteproc.tests.factories import day


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    SQLite en mémoire (StaticPool : une seule connexion partagée), schéma créé
    depuis les modèles. Les services commitent : la base est jetée à la fin.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def engineer(db_session) -> User:
    user = User(name="ENGINEER", email="engineer@test.local", role=Role.engineer, active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def owner(db_session) -> User:
    user = User(name="OWNER", email="owner@test.local", role=Role.owner, active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def engineer_actor(engineer) -> Actor:
    return Actor(user_id=engineer.id, role=engineer.role.value)


@pytest.fixture
def owner_actor(owner) -> Actor:
    return Actor(user_id=owner.id, role=owner.role.value)


@pytest.fixture
def project(db_session, owner) -> Project:
    p = Project(name="TEST-PROJECT", owner_id=owner.id, active=True)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def site(db_session, project) -> Site:
    s = Site(project_id=project.id, name="Block A", location="North plot", active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def make_request(db_session, engineer_actor, project, site):
    """Fabrique de demandes via le service (BOQ, audit, doublons compris)."""

    def _make(
        items=(("Cement", "100"),),
        start: datetime | None = None,
        end: datetime | None = None,
        title: str = "Foundation pour",
        duplicate_explanation: str | None = None,
        site_id: int | None = None,
    ):
        return create_request(
            db_session,
            actor=engineer_actor,
            payload=RequestInput(
                project_id=project.id,
                site_id=site_id or site.id,
                title=title,
                planned_start_date=start or day(10),
                planned_end_date=end or day(20),
                items=[
                    MaterialItemInput(name=name, quantity=Decimal(qty), measurement_unit="bag")
                    for name, qty in items
                ],
                duplicate_explanation=duplicate_explanation,
            ),
        )

    return _make


@pytest.fixture
def approve_all(db_session, owner_actor):
    """Approuve toutes les lignes d'une demande (-> APPROVED)."""

    def _approve(request_id: int):
        for material in list_request_materials(db_session, request_id):
            update_material_status(
                db_session,
                actor=owner_actor,
                request_id=request_id,
                material_id=material.id,
                status=MaterialStatus.approved,
            )

    return _approve


@pytest.fixture
def approved_request(make_request, approve_all):
    request = make_request()
    approve_all(request.id)
    return request
