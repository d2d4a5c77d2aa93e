from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from siteproc.app.db.session import SessionLocal
from siteproc.services.actor import Actor


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    actor_id: int | None = Header(default=None, alias="X-Actor-Id"),
    actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> Actor:
    # identité déjà validée par la couche d'accès en amont (gateway / auth)
    if actor_id is None:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return Actor(user_id=actor_id, role=actor_role)
