from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, patch_fields, require_roles
from scm_backend.app.core.config import settings
from scm_backend.app.core.security import hash_password
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import Role, Store, User
from scm_backend.services.auth import user_profile

router = APIRouter(prefix="/users")


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str | None = Field(default=None, min_length=6)
    full_name: str | None = None
    role_id: int
    store_id: int | None = None
    is_active: bool = True


class UserUpdate(BaseModel):
    password: str | None = Field(default=None, min_length=6)
    full_name: str | None = None
    role_id: int | None = None
    store_id: int | None = None
    is_active: bool | None = None


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user or user.deleted_at is not None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _check_refs(db: Session, role_id: int | None, store_id: int | None) -> None:
    if role_id is not None and not db.get(Role, role_id):
        raise HTTPException(status_code=400, detail="Invalid role_id")
    if store_id is not None:
        store = db.get(Store, store_id)
        if not store or store.deleted_at is not None:
            raise HTTPException(status_code=400, detail="Invalid store_id")


@router.get("")
def list_users(db: Session = Depends(get_db), _: User = Depends(require_roles())):
    rows = db.execute(select(User).where(User.deleted_at.is_(None)).order_by(User.id)).scalars()
    return [user_profile(u) for u in rows]


@router.get("/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    return user_profile(_get_user(db, user_id))


@router.post("", status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    username = payload.username.strip()
    if db.execute(select(User.id).where(User.username == username)).first():
        raise HTTPException(status_code=409, detail="Username already exists")
    _check_refs(db, payload.role_id, payload.store_id)

    user = User(
        username=username,
        password_hash=hash_password(payload.password or settings.DEFAULT_USER_PASSWORD),
        full_name=payload.full_name,
        role_id=payload.role_id,
        store_id=payload.store_id,
        is_active=payload.is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user_profile(user)


@router.patch("/{user_id}")
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    user = _get_user(db, user_id)
    data = patch_fields(payload, "role_id", "is_active")
    _check_refs(db, data.get("role_id"), data.get("store_id"))

    password = data.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
        user.token_hash = None
    for field, value in data.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user_profile(user)


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    user = _get_user(db, user_id)
    user.deleted_at = utcnow()
    user.is_active = False
    user.token_hash = None
    db.commit()
    return {"id": user_id, "deleted": True}
