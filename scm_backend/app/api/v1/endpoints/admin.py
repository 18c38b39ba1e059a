from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.models_v1 import User
from scm_backend.app.schemas.inventory_batch import InventoryBatchRead
from scm_backend.services.inventory import adjust_inventory
from scm_backend.services.temperature import set_batch_temperature

router = APIRouter(prefix="/admin")


class AdjustIn(BaseModel):
    item_id: int
    store_id: int
    batch_no: str = Field(min_length=1, max_length=64)
    quantity_change: int
    expiry_date: date | None = None
    unit_cost: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class TemperatureIn(BaseModel):
    batch_id: int
    temperature: float


@router.post("/inventory/adjust", response_model=InventoryBatchRead)
def adjust(payload: AdjustIn, db: Session = Depends(get_db), user: User = Depends(require_roles())):
    batch = adjust_inventory(
        db,
        item_id=payload.item_id,
        store_id=payload.store_id,
        batch_no=payload.batch_no,
        quantity_change=payload.quantity_change,
        expiry_date=payload.expiry_date,
        unit_cost=payload.unit_cost,
        notes=payload.notes,
        user_id=user.id,
    )
    db.commit()
    return batch


@router.post("/temperature/set", response_model=InventoryBatchRead)
def set_temperature(payload: TemperatureIn, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    batch = set_batch_temperature(db, payload.batch_id, payload.temperature)
    db.commit()
    return batch
