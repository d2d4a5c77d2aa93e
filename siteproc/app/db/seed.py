from __future__ import annotations

import logging

from sqlalchemy import select

from siteproc.app.db.session import SessionLocal
from siteproc.app.db.models.models_v1 import Project, Site, User
from siteproc.app.db.models.core_types import Role
from siteproc.app.logging_config import configure_logging

logger = logging.getLogger(__name__)

SEED_USERS = [
    ("OWNER", "owner@siteproc.local", Role.owner),
    ("ENGINEER", "engineer@siteproc.local", Role.engineer),
    ("ACCOUNTANT", "accountant@siteproc.local", Role.accountant),
]


def run_seed():
    db = SessionLocal()
    try:
        # 1) Utilisateurs de démo (un par rôle)
        users: dict[Role, User] = {}
        for name, email, role in SEED_USERS:
            user = db.scalar(select(User).where(User.email == email))
            if not user:
                user = User(name=name, email=email, role=role, active=True)
                db.add(user)
                db.flush()
            users[role] = user

        # 2) Projet + chantier
        project = db.scalar(select(Project).where(Project.name == "Demo Tower"))
        if not project:
            project = Project(name="Demo Tower", owner_id=users[Role.owner].id, active=True)
            db.add(project)
            db.flush()

        site = db.scalar(select(Site).where(Site.project_id == project.id, Site.name == "Block A"))
        if not site:
            site = Site(project_id=project.id, name="Block A", location="North plot", active=True)
            db.add(site)

        db.commit()
        logger.info("Seed OK: project=%s site=%s users=%s", project.name, site.name, len(users))
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
