from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, patch_fields, require_roles
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import Item, Supplier, SupplierItem, User
from scm_backend.services.procurement import find_best_mapping_for_item

router = APIRouter(prefix="/supplier-items")

R = RoleCode
readers = require_roles(R.store_manager, R.procurement_staff)
writers = require_roles(R.procurement_staff)


class SupplierItemCreate(BaseModel):
    supplier_id: int
    item_id: int
    unit_price: Decimal = Field(gt=0)
    currency: str = Field(default="VND", min_length=3, max_length=3)
    min_order_qty: int = Field(default=1, ge=1)
    lead_time_days: int | None = Field(default=None, ge=0)
    is_preferred: bool = False
    is_active: bool = True
    effective_from: date | None = None
    effective_to: date | None = None


class SupplierItemUpdate(BaseModel):
    unit_price: Decimal | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    min_order_qty: int | None = Field(default=None, ge=1)
    lead_time_days: int | None = Field(default=None, ge=0)
    is_preferred: bool | None = None
    is_active: bool | None = None
    effective_from: date | None = None
    effective_to: date | None = None


def _row(m: SupplierItem) -> dict:
    return {
        "id": m.id,
        "supplier_id": m.supplier_id,
        "item_id": m.item_id,
        "unit_price": float(m.unit_price),
        "currency": m.currency,
        "min_order_qty": m.min_order_qty,
        "lead_time_days": m.lead_time_days,
        "is_preferred": m.is_preferred,
        "is_active": m.is_active,
        "effective_from": m.effective_from,
        "effective_to": m.effective_to,
    }


def _get_mapping(db: Session, mapping_id: int) -> SupplierItem:
    m = db.get(SupplierItem, mapping_id)
    if not m:
        raise HTTPException(status_code=404, detail="Supplier item not found")
    return m


def _check_window(m: SupplierItem) -> None:
    if m.effective_from and m.effective_to and m.effective_to < m.effective_from:
        raise HTTPException(status_code=400, detail="effective_to must be on or after effective_from")


@router.get("")
def list_supplier_items(
    supplier_id: int | None = None,
    item_id: int | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    stmt = select(SupplierItem).order_by(SupplierItem.id)
    if supplier_id is not None:
        stmt = stmt.where(SupplierItem.supplier_id == supplier_id)
    if item_id is not None:
        stmt = stmt.where(SupplierItem.item_id == item_id)
    return [_row(m) for m in db.execute(stmt).scalars()]


@router.get("/best/{item_id}")
def best_mapping(item_id: int, on: date | None = None, db: Session = Depends(get_db), _: User = Depends(readers)):
    m = find_best_mapping_for_item(db, item_id, on)
    if not m:
        raise HTTPException(status_code=404, detail="No active supplier mapping for this item")
    return _row(m)


@router.get("/{mapping_id}")
def get_supplier_item(mapping_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return _row(_get_mapping(db, mapping_id))


@router.post("", status_code=201)
def create_supplier_item(payload: SupplierItemCreate, db: Session = Depends(get_db), _: User = Depends(writers)):
    supplier = db.get(Supplier, payload.supplier_id)
    if not supplier or supplier.deleted_at is not None:
        raise HTTPException(status_code=400, detail="Invalid supplier_id")
    item = db.get(Item, payload.item_id)
    if not item or item.deleted_at is not None:
        raise HTTPException(status_code=400, detail="Invalid item_id")

    exists = db.execute(
        select(SupplierItem.id)
        .where(SupplierItem.supplier_id == payload.supplier_id)
        .where(SupplierItem.item_id == payload.item_id)
    ).first()
    if exists:
        raise HTTPException(status_code=409, detail="Mapping already exists for this supplier and item")

    m = SupplierItem(**payload.model_dump())
    m.currency = m.currency.upper()
    _check_window(m)
    db.add(m)
    db.commit()
    db.refresh(m)
    return _row(m)


@router.patch("/{mapping_id}")
def update_supplier_item(mapping_id: int, payload: SupplierItemUpdate, db: Session = Depends(get_db), _: User = Depends(writers)):
    m = _get_mapping(db, mapping_id)
    data = patch_fields(payload, "unit_price", "currency", "min_order_qty", "is_preferred", "is_active")
    for field, value in data.items():
        setattr(m, field, value)
    _check_window(m)
    db.commit()
    return _row(m)


@router.delete("/{mapping_id}")
def delete_supplier_item(mapping_id: int, db: Session = Depends(get_db), _: User = Depends(writers)):
    m = _get_mapping(db, mapping_id)
    db.delete(m)
    db.commit()
    return {"id": mapping_id, "deleted": True}
