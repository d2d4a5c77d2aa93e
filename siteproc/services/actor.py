from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Utilisateur courant, déjà authentifié/autorisé en amont (couche accès)."""

    user_id: int
    role: str | None = None
