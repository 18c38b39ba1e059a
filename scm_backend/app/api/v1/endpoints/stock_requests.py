from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.db.models.core_types import RoleCode, StockRequestPriority, StockRequestStatus
from scm_backend.app.db.models.models_v1 import StockRequest, User
from scm_backend.services import replenishment
from scm_backend.services.procurement import po_to_dict

router = APIRouter(prefix="/stock-requests")

R = RoleCode
readers = require_roles(R.store_manager, R.procurement_staff)
requesters = require_roles(R.store_manager)
buyers = require_roles(R.procurement_staff)


class StockRequestCreate(BaseModel):
    store_id: int
    item_id: int
    requested_qty: int = Field(gt=0)
    priority: StockRequestPriority = StockRequestPriority.medium
    notes: str | None = None


class StockRequestUpdate(BaseModel):
    status: StockRequestStatus | None = None
    po_id: int | None = None
    notes: str | None = None


class RequestIds(BaseModel):
    request_ids: list[int] = Field(min_length=1)


class StoreScope(BaseModel):
    store_id: int | None = None


class ExpressOrderIn(BaseModel):
    item_id: int
    store_id: int
    quantity: int = Field(gt=0)


def _row(r: StockRequest) -> dict:
    return {
        "id": r.id,
        "store_id": r.store_id,
        "item_id": r.item_id,
        "requested_qty": r.requested_qty,
        "status": r.status,
        "priority": r.priority,
        "requested_by": r.requested_by,
        "po_id": r.po_id,
        "notes": r.notes,
        "created_at": r.created_at,
    }


@router.get("")
def list_requests(
    status: StockRequestStatus | None = None,
    store_id: int | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    return [_row(r) for r in replenishment.list_stock_requests(db, status=status, store_id=store_id)]


@router.get("/{request_id}")
def get_request(request_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return _row(replenishment.get_stock_request(db, request_id))


@router.post("", status_code=201)
def create_request(payload: StockRequestCreate, db: Session = Depends(get_db), user: User = Depends(requesters)):
    req = replenishment.create_stock_request(
        db,
        store_id=payload.store_id,
        item_id=payload.item_id,
        requested_qty=payload.requested_qty,
        priority=payload.priority,
        requested_by=user.id,
        notes=payload.notes,
    )
    db.commit()
    return _row(req)


@router.patch("/{request_id}")
def update_request(request_id: int, payload: StockRequestUpdate, db: Session = Depends(get_db), _: User = Depends(buyers)):
    req = replenishment.update_stock_request(
        db,
        request_id,
        status=payload.status,
        po_id=payload.po_id,
        notes=payload.notes,
    )
    db.commit()
    return _row(req)


@router.post("/cancel")
def cancel_requests(payload: RequestIds, db: Session = Depends(get_db), _: User = Depends(buyers)):
    result = replenishment.cancel_requests(db, payload.request_ids)
    db.commit()
    return result


@router.post("/generate-po")
def generate_po(payload: RequestIds, db: Session = Depends(get_db), _: User = Depends(buyers)):
    result = replenishment.generate_po_from_requests(db, payload.request_ids)
    db.commit()
    return result


@router.post("/auto-po")
def auto_po(payload: StoreScope | None = None, db: Session = Depends(get_db), _: User = Depends(buyers)):
    result = replenishment.auto_generate_po(db, payload.store_id if payload else None)
    db.commit()
    return result


@router.post("/auto-replenish")
def auto_replenish(payload: StoreScope | None = None, db: Session = Depends(get_db), _: User = Depends(buyers)):
    result = replenishment.auto_replenish_below_safety_stock(db, payload.store_id if payload else None)
    db.commit()
    return result


@router.post("/express-order")
def express_order(
    payload: ExpressOrderIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(R.store_manager, R.procurement_staff)),
):
    po = replenishment.express_order(
        db,
        item_id=payload.item_id,
        store_id=payload.store_id,
        quantity=payload.quantity,
        requested_by=user.id,
    )
    db.commit()
    return po_to_dict(po)
