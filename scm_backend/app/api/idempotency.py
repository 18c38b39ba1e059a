from __future__ import annotations

import hashlib


def scoped_key(scope: str, user_id: int, provided: str | None) -> str | None:
    """
    Idempotency-Key client -> clé stockée (sha256, 64 car.), propre à la route et à l'utilisateur.
    Sans header : pas d'idempotence, chaque appel crée une écriture.
    """
    if not provided or not provided.strip():
        return None
    raw = f"{scope}-IDEMP:{user_id}:{provided.strip()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
