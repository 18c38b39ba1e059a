from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.core_types import BatchStatus, RoleCode
from scm_backend.app.db.models.models_v1 import InventoryBatch, User
from scm_backend.app.schemas.inventory_batch import InventoryBatchRead
from scm_backend.services import inventory
from scm_backend.services.common import get_alive

router = APIRouter(prefix="/inventory-batches")

R = RoleCode
readers = require_roles(R.store_manager, R.inventory_staff)
writers = require_roles(R.inventory_staff)


class BatchCreate(BaseModel):
    item_id: int
    store_id: int
    batch_no: str = Field(min_length=1, max_length=64)
    expiry_date: date
    quantity_on_hand: int
    unit_cost: Decimal | None = Field(default=None, ge=0)
    temperature: float | None = None


class BatchUpdate(BaseModel):
    batch_no: str | None = Field(default=None, max_length=64)
    expiry_date: date | None = None
    quantity_on_hand: int | None = None
    unit_cost: Decimal | None = Field(default=None, ge=0)
    temperature: float | None = None


@router.get("", response_model=list[InventoryBatchRead])
def list_batches(
    item_id: int | None = None,
    store_id: int | None = None,
    status: BatchStatus | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    return inventory.list_batches(db, item_id=item_id, store_id=store_id, status=status)


@router.get("/{batch_id}", response_model=InventoryBatchRead)
def get_batch(batch_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return get_alive(db, InventoryBatch, batch_id, "Batch")


@router.post("", status_code=201, response_model=InventoryBatchRead)
def create_batch(payload: BatchCreate, db: Session = Depends(get_db), _: User = Depends(writers)):
    batch = inventory.create_batch(
        db,
        item_id=payload.item_id,
        store_id=payload.store_id,
        batch_no=payload.batch_no,
        expiry_date=payload.expiry_date,
        quantity=payload.quantity_on_hand,
        unit_cost=payload.unit_cost,
        temperature=payload.temperature,
    )
    db.commit()
    return batch


@router.patch("/{batch_id}", response_model=InventoryBatchRead)
def update_batch(batch_id: int, payload: BatchUpdate, db: Session = Depends(get_db), _: User = Depends(writers)):
    batch = inventory.update_batch(db, batch_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return batch


@router.delete("/{batch_id}")
def delete_batch(batch_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    inventory.delete_batch(db, batch_id)
    db.commit()
    return {"id": batch_id, "deleted": True}
