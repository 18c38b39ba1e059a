from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.core_types import POStatus, RoleCode
from scm_backend.app.db.models.models_v1 import User
from scm_backend.services import procurement
from scm_backend.services.procurement import POLine, po_to_dict

router = APIRouter(prefix="/purchase-orders")

R = RoleCode
readers = require_roles(R.store_manager, R.procurement_staff, R.inventory_staff)
buyers = require_roles(R.procurement_staff)
approvers = require_roles(R.store_manager)
receivers = require_roles(R.inventory_staff)


class POLineCreate(BaseModel):
    item_id: int
    quantity: int
    unit_price: Decimal
    unit: str


class POCreate(BaseModel):
    po_number: str | None = Field(default=None, max_length=64)
    supplier_id: int
    store_id: int
    order_date: date | None = None
    expected_delivery_date: date | None = None
    total_amount: Decimal | None = None
    notes: str | None = None
    submit: bool = False
    items: list[POLineCreate] = Field(default_factory=list)


class POUpdate(BaseModel):
    notes: str | None = None
    expected_delivery_date: date | None = None


class RejectIn(BaseModel):
    reason: str | None = None


class ConfirmIn(BaseModel):
    expected_delivery_date: date | None = None
    supplier_notes: str | None = None


class RejectReceiptIn(BaseModel):
    reason: str = Field(min_length=1)


@router.get("")
def list_pos(
    supplier_id: int | None = None,
    store_id: int | None = None,
    status: POStatus | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    rows = procurement.list_purchase_orders(db, supplier_id=supplier_id, store_id=store_id, status=status)
    return [po_to_dict(po, with_items=False) for po in rows]


@router.get("/pending-approvals")
def pending_approvals(db: Session = Depends(get_db), _: User = Depends(approvers)):
    return [po_to_dict(po) for po in procurement.list_pending_approvals(db)]


@router.get("/{po_id}")
def get_po(po_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return po_to_dict(procurement.get_purchase_order(db, po_id))


@router.post("", status_code=201)
def create_po(payload: POCreate, db: Session = Depends(get_db), _: User = Depends(buyers)):
    po = procurement.create_purchase_order(
        db,
        supplier_id=payload.supplier_id,
        store_id=payload.store_id,
        lines=[POLine(**ln.model_dump()) for ln in payload.items],
        po_number=payload.po_number,
        order_date=payload.order_date,
        expected_delivery_date=payload.expected_delivery_date,
        total_amount=payload.total_amount,
        notes=payload.notes,
        status=POStatus.pending_approval if payload.submit else POStatus.draft,
    )
    db.commit()
    return po_to_dict(po)


@router.patch("/{po_id}")
def update_po(po_id: int, payload: POUpdate, db: Session = Depends(get_db), _: User = Depends(buyers)):
    po = procurement.update_purchase_order(
        db,
        po_id,
        notes=payload.notes,
        expected_delivery_date=payload.expected_delivery_date,
    )
    db.commit()
    return po_to_dict(po)


@router.delete("/{po_id}")
def delete_po(po_id: int, db: Session = Depends(get_db), _: User = Depends(buyers)):
    procurement.delete_purchase_order(db, po_id)
    db.commit()
    return {"id": po_id, "deleted": True}


# ---------- TRANSITIONS ----------
@router.post("/{po_id}/submit")
def submit_po(po_id: int, db: Session = Depends(get_db), _: User = Depends(buyers)):
    po = procurement.submit_purchase_order(db, po_id)
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/approve")
def approve_po(po_id: int, db: Session = Depends(get_db), user: User = Depends(approvers)):
    po = procurement.approve_purchase_order(db, po_id, user.id)
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/reject")
def reject_po(po_id: int, payload: RejectIn | None = None, db: Session = Depends(get_db), user: User = Depends(approvers)):
    po = procurement.reject_purchase_order(db, po_id, user.id, payload.reason if payload else None)
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/send")
def send_po(po_id: int, db: Session = Depends(get_db), _: User = Depends(buyers)):
    po = procurement.send_purchase_order(db, po_id)
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/confirm")
def confirm_po(po_id: int, payload: ConfirmIn | None = None, db: Session = Depends(get_db), user: User = Depends(require_roles())):
    payload = payload or ConfirmIn()
    po = procurement.confirm_purchase_order(
        db,
        po_id,
        user.id,
        expected_delivery_date=payload.expected_delivery_date,
        supplier_notes=payload.supplier_notes,
    )
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/receive")
def receive_po(po_id: int, db: Session = Depends(get_db), user: User = Depends(receivers)):
    po = procurement.receive_purchase_order(db, po_id, user.id)
    db.commit()
    return po_to_dict(po)


@router.post("/{po_id}/reject-receipt")
def reject_receipt(po_id: int, payload: RejectReceiptIn, db: Session = Depends(get_db), user: User = Depends(receivers)):
    po = procurement.reject_receipt(db, po_id, user.id, payload.reason)
    db.commit()
    return po_to_dict(po)
