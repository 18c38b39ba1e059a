from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import (
    InventoryBatch,
    GoodsReceipt,
    GoodsReceiptItem,
)
from scm_backend.app.db.models.core_types import TransactionType, ReferenceType
from scm_backend.services.common import get_alive, money
from scm_backend.services.errors import ServiceError, InvalidTransitionError
from scm_backend.services.inventory import find_batch, record_transaction, refresh_batch_status
from scm_backend.services.procurement import (
    RECEIVABLE_STATUSES,
    get_purchase_order,
    mark_delivered,
)

logger = logging.getLogger(__name__)


@dataclass
class ReceiptLine:
    item_id: int
    batch_no: str
    expiry_date: date
    received_qty: int
    temperature: float | None = None


def weighted_average_cost(
    old_cost: Decimal | None,
    old_qty: int,
    new_cost: Decimal,
    new_qty: int,
) -> Decimal:
    """(old_cost*old_qty + new_cost*new_qty) / (old_qty + new_qty)"""
    total = old_qty + new_qty
    if total <= 0:
        return money(new_cost)
    old_value = (old_cost or Decimal("0")) * old_qty
    return money((old_value + Decimal(new_cost) * new_qty) / total)


def find_receipt_by_key(db: Session, idempotency_key: str) -> GoodsReceipt | None:
    return db.execute(
        select(GoodsReceipt).where(GoodsReceipt.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


def create_goods_receipt(
    db: Session,
    *,
    po_id: int,
    lines: list[ReceiptLine],
    received_date: date | None = None,
    received_by: int | None = None,
    idempotency_key: str | None = None,
) -> GoodsReceipt:
    """
    Réception d'un PO envoyé / confirmé.

    Par ligne : création du lot ou fusion dans le lot existant
    (batch_no, magasin, article) au coût moyen pondéré, puis mouvement RECEIPT.
    Le PO passe en delivered.
    """
    if idempotency_key:
        existing = find_receipt_by_key(db, idempotency_key)
        if existing:
            return existing

    if not lines:
        raise ServiceError("Goods receipt must have at least one item")

    po = get_purchase_order(db, po_id, lock=True)
    if po.status not in RECEIVABLE_STATUSES:
        raise InvalidTransitionError("PO", po.status.value, "receive goods for")

    po_prices = {ln.item_id: ln.unit_price for ln in po.items}

    now = utcnow()
    grn = GoodsReceipt(
        grn_number=f"GRN-{now:%Y%m%d%H%M%S%f}-{po.po_number}",
        po_id=po.id,
        received_date=received_date or now.date(),
        received_by=received_by,
        idempotency_key=idempotency_key,
    )
    db.add(grn)
    db.flush()

    received_any = False
    for ln in lines:
        if ln.item_id not in po_prices:
            logger.warning("GRN %s: item %s is not on PO %s, line skipped", grn.grn_number, ln.item_id, po.po_number)
            continue
        if ln.received_qty <= 0:
            raise ServiceError(f"Received quantity must be greater than 0 (item {ln.item_id})")
        if not ln.batch_no or not ln.batch_no.strip():
            raise ServiceError(f"Batch number is required (item {ln.item_id})")

        batch_no = ln.batch_no.strip()
        cost = po_prices[ln.item_id]

        batch = find_batch(db, store_id=po.store_id, batch_no=batch_no)
        if batch is not None and batch.item_id != ln.item_id:
            raise ServiceError(f"Batch {batch_no} already exists for another item in this store")

        if batch is not None:
            batch.unit_cost = weighted_average_cost(batch.unit_cost, batch.quantity_on_hand, cost, ln.received_qty)
            batch.quantity_on_hand += ln.received_qty
            batch.expiry_date = ln.expiry_date
            if ln.temperature is not None:
                batch.temperature = ln.temperature
        else:
            batch = InventoryBatch(
                item_id=ln.item_id,
                store_id=po.store_id,
                batch_no=batch_no,
                expiry_date=ln.expiry_date,
                quantity_on_hand=ln.received_qty,
                unit_cost=money(cost),
                temperature=ln.temperature,
            )
            db.add(batch)
            db.flush()
        refresh_batch_status(batch)

        grn.items.append(
            GoodsReceiptItem(
                item_id=ln.item_id,
                batch_no=batch_no,
                expiry_date=ln.expiry_date,
                received_qty=ln.received_qty,
            )
        )
        record_transaction(
            db,
            batch,
            TransactionType.receipt,
            ln.received_qty,
            reference_type=ReferenceType.grn,
            reference_id=grn.id,
            created_by=received_by,
        )
        received_any = True

    if not received_any:
        raise ServiceError(f"None of the received items belong to PO {po.po_number}")

    mark_delivered(db, po)
    db.flush()

    logger.info("GRN %s posted for PO %s (%d line(s))", grn.grn_number, po.po_number, len(grn.items))
    return grn


def get_goods_receipt(db: Session, grn_id: int) -> GoodsReceipt:
    return get_alive(db, GoodsReceipt, grn_id, "Goods receipt")


def list_goods_receipts(db: Session, *, po_id: int | None = None) -> list[GoodsReceipt]:
    stmt = select(GoodsReceipt).where(GoodsReceipt.deleted_at.is_(None))
    if po_id is not None:
        stmt = stmt.where(GoodsReceipt.po_id == po_id)
    return list(db.execute(stmt.order_by(GoodsReceipt.created_at.desc(), GoodsReceipt.id.desc())).scalars())


def delete_goods_receipt(db: Session, grn_id: int) -> None:
    grn = get_goods_receipt(db, grn_id)
    grn.deleted_at = utcnow()
    db.flush()


def grn_to_dict(grn: GoodsReceipt) -> dict:
    return {
        "id": grn.id,
        "grn_number": grn.grn_number,
        "po_id": grn.po_id,
        "received_date": grn.received_date,
        "received_by": grn.received_by,
        "created_at": grn.created_at,
        "items": [
            {
                "item_id": gi.item_id,
                "batch_no": gi.batch_no,
                "expiry_date": gi.expiry_date,
                "received_qty": gi.received_qty,
            }
            for gi in grn.items
        ],
    }
