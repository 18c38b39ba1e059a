from __future__ import annotations

from typing import Generator

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.app.db.session import SessionLocal
from scm_backend.services.auth import user_for_token


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    user = user_for_token(db, token.strip())
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def require_roles(*roles: RoleCode):
    """ADMIN passe toujours."""
    allowed = {r.value for r in roles} | {RoleCode.admin.value}

    def checker(user: User = Depends(get_current_user)) -> User:
        code = user.role.code if user.role else None
        if code not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user

    return checker


def patch_fields(payload: BaseModel, *required: str) -> dict:
    """Champs envoyés par un PATCH ; null refusé pour les colonnes obligatoires."""
    data = payload.model_dump(exclude_unset=True)
    for field in required:
        if field in data and data[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")
    return data
