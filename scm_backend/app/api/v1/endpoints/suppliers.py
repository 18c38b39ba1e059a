from __future__ import annotations

import re

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, patch_fields, require_roles
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import Supplier, User

router = APIRouter(prefix="/suppliers")

R = RoleCode
readers = require_roles(R.store_manager, R.procurement_staff)
writers = require_roles(R.procurement_staff)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s()-]+$")


class SupplierCreate(BaseModel):
    name: str
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    lead_time_days: int = 0
    reliability_score: int = 100
    is_active: bool = True


class SupplierUpdate(BaseModel):
    name: str | None = None
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    lead_time_days: int | None = None
    reliability_score: int | None = None
    is_active: bool | None = None


def _row(s: Supplier) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "contact_person": s.contact_person,
        "email": s.email,
        "phone": s.phone,
        "address": s.address,
        "lead_time_days": s.lead_time_days,
        "reliability_score": s.reliability_score,
        "is_active": s.is_active,
    }


def _get_supplier(db: Session, supplier_id: int) -> Supplier:
    s = db.get(Supplier, supplier_id)
    if not s or s.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return s


def validate_supplier_fields(data: dict) -> None:
    """Messages clairs plutôt que des 422 génériques."""
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Supplier name is required")
        if len(name) < 2:
            raise HTTPException(status_code=400, detail="Supplier name must be at least 2 characters")
    if data.get("email") and not EMAIL_RE.match(data["email"].strip()):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if data.get("phone") and not PHONE_RE.match(data["phone"].strip()):
        raise HTTPException(status_code=400, detail="Invalid phone number format")
    if data.get("lead_time_days") is not None and data["lead_time_days"] < 0:
        raise HTTPException(status_code=400, detail="Lead time days cannot be negative")
    score = data.get("reliability_score")
    if score is not None and not 0 <= score <= 100:
        raise HTTPException(status_code=400, detail="Reliability score must be between 0 and 100")


def _name_taken(db: Session, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Supplier.id).where(func.lower(Supplier.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Supplier.id != exclude_id)
    return db.execute(stmt).first() is not None


@router.get("")
def list_suppliers(db: Session = Depends(get_db), _: User = Depends(readers)):
    rows = db.execute(select(Supplier).where(Supplier.deleted_at.is_(None)).order_by(Supplier.id)).scalars()
    return [_row(s) for s in rows]


@router.get("/{supplier_id}")
def get_supplier(supplier_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return _row(_get_supplier(db, supplier_id))


@router.post("", status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db), _: User = Depends(writers)):
    data = payload.model_dump()
    validate_supplier_fields(data)
    data["name"] = data["name"].strip()
    if _name_taken(db, data["name"]):
        raise HTTPException(status_code=409, detail=f"Supplier with name '{data['name']}' already exists")

    s = Supplier(**data)
    db.add(s)
    db.commit()
    db.refresh(s)
    return _row(s)


@router.patch("/{supplier_id}")
def update_supplier(supplier_id: int, payload: SupplierUpdate, db: Session = Depends(get_db), _: User = Depends(writers)):
    s = _get_supplier(db, supplier_id)
    data = patch_fields(payload, "lead_time_days", "reliability_score", "is_active")
    validate_supplier_fields(data)
    if "name" in data:
        data["name"] = data["name"].strip()
        if _name_taken(db, data["name"], exclude_id=s.id):
            raise HTTPException(status_code=409, detail=f"Supplier with name '{data['name']}' already exists")
    for field, value in data.items():
        setattr(s, field, value)
    db.commit()
    return _row(s)


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: int, db: Session = Depends(get_db), _: User = Depends(writers)):
    s = _get_supplier(db, supplier_id)
    s.deleted_at = utcnow()
    s.is_active = False
    db.commit()
    return {"id": supplier_id, "deleted": True}
