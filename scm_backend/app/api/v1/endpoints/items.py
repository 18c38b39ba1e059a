from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, patch_fields, require_roles
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.core_types import RoleCode, StorageType
from scm_backend.app.db.models.models_v1 import Item, User
from scm_backend.services.inventory import calculate_safety_stock, get_current_stock

router = APIRouter(prefix="/items")

R = RoleCode
readers = require_roles(R.store_manager, R.procurement_staff, R.inventory_staff)


class ItemCreate(BaseModel):
    item_name: str = Field(min_length=1, max_length=255)
    sku: str = Field(min_length=1, max_length=64)
    category: str | None = None
    unit: str = Field(default="unit", min_length=1, max_length=32)
    min_stock_level: int = Field(default=10, ge=0)
    max_stock_level: int = Field(default=100, ge=0)
    safety_stock: Decimal | None = Field(default=None, ge=0)
    lead_time_days: int | None = Field(default=None, ge=0)
    storage_type: StorageType = StorageType.cold
    min_temperature: float | None = None
    max_temperature: float | None = None
    is_active: bool = True


class ItemUpdate(BaseModel):
    item_name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = None
    unit: str | None = Field(default=None, min_length=1, max_length=32)
    min_stock_level: int | None = Field(default=None, ge=0)
    max_stock_level: int | None = Field(default=None, ge=0)
    safety_stock: Decimal | None = Field(default=None, ge=0)
    lead_time_days: int | None = Field(default=None, ge=0)
    storage_type: StorageType | None = None
    min_temperature: float | None = None
    max_temperature: float | None = None
    is_active: bool | None = None


def _row(i: Item) -> dict:
    return {
        "id": i.id,
        "item_name": i.item_name,
        "sku": i.sku,
        "category": i.category,
        "unit": i.unit,
        "min_stock_level": i.min_stock_level,
        "max_stock_level": i.max_stock_level,
        "safety_stock": float(i.safety_stock) if i.safety_stock is not None else None,
        "lead_time_days": i.lead_time_days,
        "storage_type": i.storage_type,
        "min_temperature": i.min_temperature,
        "max_temperature": i.max_temperature,
        "is_active": i.is_active,
    }


def _get_item(db: Session, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if not item or item.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


def _check_ranges(item: Item) -> None:
    if item.max_stock_level < item.min_stock_level:
        raise HTTPException(status_code=400, detail="max_stock_level must be >= min_stock_level")
    if (
        item.min_temperature is not None
        and item.max_temperature is not None
        and item.min_temperature > item.max_temperature
    ):
        raise HTTPException(status_code=400, detail="min_temperature must be <= max_temperature")


@router.get("")
def list_items(db: Session = Depends(get_db), _: User = Depends(readers)):
    rows = db.execute(select(Item).where(Item.deleted_at.is_(None)).order_by(Item.id)).scalars()
    return [_row(i) for i in rows]


@router.get("/{item_id}")
def get_item(item_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return _row(_get_item(db, item_id))


@router.get("/{item_id}/stock")
def item_stock(item_id: int, store_id: int | None = None, db: Session = Depends(get_db), _: User = Depends(readers)):
    item = _get_item(db, item_id)
    return {
        "item_id": item.id,
        "store_id": store_id,
        "current_stock": get_current_stock(db, item.id, store_id),
        "safety_stock": calculate_safety_stock(db, item.id, store_id),
    }


@router.post("", status_code=201)
def create_item(payload: ItemCreate, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    sku = payload.sku.strip()
    if db.execute(select(Item.id).where(Item.sku == sku)).first():
        raise HTTPException(status_code=409, detail="SKU already exists")

    item = Item(**{**payload.model_dump(), "sku": sku, "item_name": payload.item_name.strip()})
    _check_ranges(item)
    db.add(item)
    db.commit()
    db.refresh(item)
    return _row(item)


@router.patch("/{item_id}")
def update_item(
    item_id: int,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(R.store_manager, R.inventory_staff)),
):
    item = _get_item(db, item_id)
    data = patch_fields(
        payload, "item_name", "unit", "min_stock_level", "max_stock_level", "storage_type", "is_active"
    )
    for field, value in data.items():
        setattr(item, field, value)
    _check_ranges(item)
    db.commit()
    return _row(item)


@router.delete("/{item_id}")
def delete_item(item_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    item = _get_item(db, item_id)
    item.deleted_at = utcnow()
    item.is_active = False
    db.commit()
    return {"id": item_id, "deleted": True}
