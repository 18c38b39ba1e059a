from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_current_user, get_db, require_roles
from scm_backend.app.db.models.models_v1 import Role, User

router = APIRouter(prefix="/roles")


class RoleCreate(BaseModel):
    code: str = Field(min_length=2, max_length=32)
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None


def _row(r: Role) -> dict:
    return {"id": r.id, "code": r.code, "name": r.name, "description": r.description}


def _get_role(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.get("")
def list_roles(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return [_row(r) for r in db.execute(select(Role).order_by(Role.id)).scalars()]


@router.get("/{role_id}")
def get_role(role_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return _row(_get_role(db, role_id))


@router.post("", status_code=201)
def create_role(payload: RoleCreate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    code = payload.code.strip().upper()
    if db.execute(select(Role.id).where(Role.code == code)).first():
        raise HTTPException(status_code=409, detail="Role code already exists")

    role = Role(code=code, name=payload.name.strip(), description=payload.description)
    db.add(role)
    db.commit()
    db.refresh(role)
    return _row(role)


@router.patch("/{role_id}")
def update_role(role_id: int, payload: RoleUpdate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    role = _get_role(db, role_id)
    if payload.name is not None:
        role.name = payload.name.strip()
    if payload.description is not None:
        role.description = payload.description
    db.commit()
    return _row(role)


@router.delete("/{role_id}")
def delete_role(role_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    role = _get_role(db, role_id)
    in_use = db.execute(select(User.id).where(User.role_id == role.id).where(User.deleted_at.is_(None))).first()
    if in_use:
        raise HTTPException(status_code=409, detail="Role is assigned to users")
    db.delete(role)
    db.commit()
    return {"id": role_id, "deleted": True}
