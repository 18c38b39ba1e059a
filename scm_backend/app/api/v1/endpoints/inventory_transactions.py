from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scm_backend.app.api.deps import get_db, require_roles
from scm_backend.app.core.time_utils import to_naive_utc
from scm_backend.app.db.models.core_types import RoleCode, TransactionType
from scm_backend.app.db.models.models_v1 import InventoryTransaction, User
from scm_backend.services import inventory
from scm_backend.services.common import get_alive

router = APIRouter(prefix="/inventory-transactions")

R = RoleCode
readers = require_roles(R.store_manager, R.inventory_staff)


def _row(t: InventoryTransaction) -> dict:
    return {
        "id": t.id,
        "batch_id": t.batch_id,
        "item_id": t.item_id,
        "transaction_type": t.transaction_type,
        "quantity": t.quantity,
        "reference_type": t.reference_type,
        "reference_id": t.reference_id,
        "notes": t.notes,
        "created_by": t.created_by,
        "created_at": t.created_at,
    }


@router.get("")
def list_transactions(
    transaction_type: TransactionType | None = None,
    item_id: int | None = None,
    batch_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(readers),
):
    rows = inventory.list_transactions(
        db,
        transaction_type=transaction_type,
        item_id=item_id,
        batch_id=batch_id,
        start=to_naive_utc(start_date),
        end=to_naive_utc(end_date),
    )
    return [_row(t) for t in rows]


@router.get("/{tx_id}")
def get_transaction(tx_id: int, db: Session = Depends(get_db), _: User = Depends(readers)):
    return _row(get_alive(db, InventoryTransaction, tx_id, "Transaction"))
