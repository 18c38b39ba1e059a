from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_current_user, get_db, patch_fields, require_roles
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import Store, User

router = APIRouter(prefix="/stores")


class StoreCreate(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=200)
    location: str | None = None
    is_active: bool = True


class StoreUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    location: str | None = None
    is_active: bool | None = None


def _row(s: Store) -> dict:
    return {"id": s.id, "code": s.code, "name": s.name, "location": s.location, "is_active": s.is_active}


def _get_store(db: Session, store_id: int) -> Store:
    store = db.get(Store, store_id)
    if not store or store.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


@router.get("")
def list_stores(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    rows = db.execute(select(Store).where(Store.deleted_at.is_(None)).order_by(Store.id)).scalars()
    return [_row(s) for s in rows]


@router.get("/{store_id}")
def get_store(store_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return _row(_get_store(db, store_id))


@router.post("", status_code=201)
def create_store(payload: StoreCreate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    code = payload.code.strip()
    if db.execute(select(Store.id).where(Store.code == code)).first():
        raise HTTPException(status_code=409, detail="Store code already exists")

    store = Store(code=code, name=payload.name.strip(), location=payload.location, is_active=payload.is_active)
    db.add(store)
    db.commit()
    db.refresh(store)
    return _row(store)


@router.patch("/{store_id}")
def update_store(store_id: int, payload: StoreUpdate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    store = _get_store(db, store_id)
    for field, value in patch_fields(payload, "name", "is_active").items():
        setattr(store, field, value)
    db.commit()
    return _row(store)


@router.delete("/{store_id}")
def delete_store(store_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    store = _get_store(db, store_id)
    store.deleted_at = utcnow()
    store.is_active = False
    db.commit()
    return {"id": store_id, "deleted": True}
