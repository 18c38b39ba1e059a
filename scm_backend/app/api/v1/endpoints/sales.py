from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.api.idempotency import scoped_key
from scm_backend.app.core.time_utils import to_naive_utc
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services import sales
from scm_backend.services.sales import sale_to_dict

router = APIRouter(prefix="/sales")

R = RoleCode
readers = require_roles(R.store_manager, R.inventory_staff, R.procurement_staff)
sellers = require_roles(R.store_manager)


class SaleCreate(BaseModel):
    store_id: int
    item_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    sale_date: datetime | None = None
    notes: str | None = None


@router.get("")
def list_sales(store_id: int | None = None, db: Session = Depends(get_db), _: User = Depends(readers)):
    return [sale_to_dict(s) for s in sales.list_sales(db, store_id=store_id)]


@router.get("/{sale_id}")
def get_sale(sale_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return sale_to_dict(sales.get_sale(db, sale_id))


@router.post("", status_code=201)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(sellers),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    key = scoped_key("SALE", user.id, idempotency_key)
    try:
        sale = sales.create_sale(
            db,
            store_id=payload.store_id,
            item_id=payload.item_id,
            quantity=payload.quantity,
            unit_price=payload.unit_price,
            sale_date=to_naive_utc(payload.sale_date),
            user_id=user.id,
            notes=payload.notes,
            idempotency_key=key,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = sales.find_sale_by_key(db, key) if key else None
        if not existing:
            raise HTTPException(status_code=409, detail="Sale conflicts with existing data")
        sale = existing
    return sale_to_dict(sale)
