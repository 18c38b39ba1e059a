from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.api.idempotency import scoped_key
from scm_backend.app.db.models.core_types import RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services import receiving
from scm_backend.services.receiving import ReceiptLine, grn_to_dict

router = APIRouter(prefix="/goods-receipts")

R = RoleCode
readers = require_roles(R.store_manager, R.inventory_staff)
receivers = require_roles(R.inventory_staff)


class GRLineCreate(BaseModel):
    item_id: int
    batch_no: str = Field(min_length=1, max_length=64)
    expiry_date: date
    received_qty: int = Field(gt=0)
    temperature: float | None = None


class GRCreate(BaseModel):
    po_id: int
    received_date: date | None = None
    items: list[GRLineCreate] = Field(min_length=1)


@router.get("")
def list_receipts(po_id: int | None = None, db: Session = Depends(get_db), _: User = Depends(readers)):
    return [grn_to_dict(g) for g in receiving.list_goods_receipts(db, po_id=po_id)]


@router.get("/{grn_id}")
def get_receipt(grn_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return grn_to_dict(receiving.get_goods_receipt(db, grn_id))


@router.post("", status_code=201)
def create_receipt(
    payload: GRCreate,
    db: Session = Depends(get_db),
    user: User = Depends(receivers),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    key = scoped_key("GRN", user.id, idempotency_key)
    try:
        grn = receiving.create_goods_receipt(
            db,
            po_id=payload.po_id,
            lines=[ReceiptLine(**ln.model_dump()) for ln in payload.items],
            received_date=payload.received_date,
            received_by=user.id,
            idempotency_key=key,
        )
        db.commit()
    except IntegrityError:
        # deux requêtes concurrentes avec la même clé
        db.rollback()
        existing = receiving.find_receipt_by_key(db, key) if key else None
        if not existing:
            raise HTTPException(status_code=409, detail="Goods receipt conflicts with existing data")
        grn = existing
    return grn_to_dict(grn)


@router.patch("/{grn_id}")
def update_receipt(grn_id: int, _: User = Depends(receivers)):
    raise HTTPException(status_code=405, detail="Goods receipts cannot be modified once posted")


@router.delete("/{grn_id}")
def delete_receipt(grn_id: int, db: Session = Depends(get_db), _: User = Depends(require_roles())):
    receiving.delete_goods_receipt(db, grn_id)
    db.commit()
    return {"id": grn_id, "deleted": True}
