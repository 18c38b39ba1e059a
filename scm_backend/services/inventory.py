from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow, today
from scm_backend.app.db.models.models_v1 import (
    Item,
    Store,
    InventoryBatch,
    InventoryTransaction,
    SalesTransaction,
)
from scm_backend.app.db.models.core_types import (
    BatchStatus,
    TransactionType,
    ReferenceType,
)
from scm_backend.services.common import get_alive, money
from scm_backend.services.errors import ServiceError, NotFoundError, ConflictError

logger = logging.getLogger(__name__)

DEFAULT_MIN_STOCK_LEVEL = 10
DEFAULT_LEAD_TIME_DAYS = 3
SAFETY_FACTOR = Decimal("1.5")
DEMAND_WINDOW_DAYS = 30


# ---------- STATUT / NIVEAUX ----------
def batch_status(quantity: int, min_stock_level: int | None = None) -> BatchStatus:
    threshold = min_stock_level if min_stock_level is not None else DEFAULT_MIN_STOCK_LEVEL
    if quantity <= 0:
        return BatchStatus.out_of_stock
    if quantity < threshold:
        return BatchStatus.low_stock
    return BatchStatus.in_stock


def refresh_batch_status(batch: InventoryBatch, item: Item | None = None) -> BatchStatus:
    item = item or batch.item
    batch.status = batch_status(batch.quantity_on_hand, item.min_stock_level if item else None)
    return batch.status


def get_current_stock(db: Session, item_id: int, store_id: int | None = None) -> int:
    """Somme des quantity_on_hand des lots (non supprimés) de l'article."""
    stmt = (
        select(func.coalesce(func.sum(InventoryBatch.quantity_on_hand), 0))
        .where(InventoryBatch.item_id == item_id)
        .where(InventoryBatch.deleted_at.is_(None))
    )
    if store_id is not None:
        stmt = stmt.where(InventoryBatch.store_id == store_id)
    return int(db.execute(stmt).scalar_one())


def sold_quantity_since(
    db: Session,
    item_id: int,
    since: datetime,
    store_id: int | None = None,
) -> int:
    stmt = (
        select(func.coalesce(func.sum(SalesTransaction.quantity), 0))
        .where(SalesTransaction.item_id == item_id)
        .where(SalesTransaction.sale_date >= since)
    )
    if store_id is not None:
        stmt = stmt.where(SalesTransaction.store_id == store_id)
    return int(db.execute(stmt).scalar_one())


def calculate_safety_stock(
    db: Session,
    item_id: int,
    store_id: int | None = None,
    *,
    now: datetime | None = None,
) -> int:
    """
    Stock de sécurité d'un article.

    Règle métier :
        - safety_stock saisi (> 0) sur l'article : prioritaire
        - sinon : ceil(ventes_30j / 30 * lead_time * 1.5),
          jamais sous min_stock_level
        - aucune vente sur 30 jours : min_stock_level
    """
    item = get_alive(db, Item, item_id, "Item")

    if item.safety_stock is not None and item.safety_stock > 0:
        return int(math.ceil(item.safety_stock))

    floor_level = item.min_stock_level or DEFAULT_MIN_STOCK_LEVEL

    now = now or utcnow()
    total_sold = sold_quantity_since(db, item.id, now - timedelta(days=DEMAND_WINDOW_DAYS), store_id)
    if total_sold <= 0:
        return floor_level

    avg_daily = Decimal(total_sold) / DEMAND_WINDOW_DAYS
    lead_time = item.lead_time_days or DEFAULT_LEAD_TIME_DAYS
    computed = int(math.ceil(avg_daily * lead_time * SAFETY_FACTOR))
    return max(computed, floor_level)


# ---------- LOTS ----------
def find_batch(db: Session, *, store_id: int, batch_no: str, item_id: int | None = None) -> InventoryBatch | None:
    stmt = (
        select(InventoryBatch)
        .where(InventoryBatch.store_id == store_id)
        .where(InventoryBatch.batch_no == batch_no)
        .where(InventoryBatch.deleted_at.is_(None))
        .with_for_update()
    )
    if item_id is not None:
        stmt = stmt.where(InventoryBatch.item_id == item_id)
    return db.execute(stmt).scalar_one_or_none()


def _check_batch_fields(batch_no: str | None, quantity: int | None, expiry_date: date | None) -> None:
    if batch_no is not None and not batch_no.strip():
        raise ServiceError("Batch number is required")
    if quantity is not None and quantity <= 0:
        raise ServiceError("Quantity must be greater than 0")
    if expiry_date is not None and expiry_date <= today():
        raise ServiceError("Expiry date must be in the future")


def create_batch(
    db: Session,
    *,
    item_id: int,
    store_id: int,
    batch_no: str,
    expiry_date: date,
    quantity: int,
    unit_cost: Decimal | None = None,
    temperature: float | None = None,
) -> InventoryBatch:
    _check_batch_fields(batch_no, quantity, expiry_date)
    item = get_alive(db, Item, item_id, "Item")
    get_alive(db, Store, store_id, "Store")

    batch_no = batch_no.strip()
    clash = db.execute(
        select(InventoryBatch.id)
        .where(InventoryBatch.store_id == store_id)
        .where(InventoryBatch.batch_no == batch_no)
        .where(InventoryBatch.deleted_at.is_(None))
    ).first()
    if clash:
        raise ConflictError(f"Batch number {batch_no} already exists in this store")

    batch = InventoryBatch(
        item_id=item.id,
        store_id=store_id,
        batch_no=batch_no,
        expiry_date=expiry_date,
        quantity_on_hand=quantity,
        unit_cost=money(unit_cost) if unit_cost is not None else None,
        temperature=temperature,
    )
    refresh_batch_status(batch, item)
    db.add(batch)
    db.flush()
    return batch


def update_batch(db: Session, batch_id: int, **fields) -> InventoryBatch:
    batch = get_alive(db, InventoryBatch, batch_id, "Batch")
    _check_batch_fields(fields.get("batch_no"), fields.get("quantity_on_hand"), fields.get("expiry_date"))

    new_no = fields.get("batch_no")
    if new_no is not None and new_no.strip() != batch.batch_no:
        new_no = new_no.strip()
        clash = db.execute(
            select(InventoryBatch.id)
            .where(InventoryBatch.store_id == batch.store_id)
            .where(InventoryBatch.batch_no == new_no)
            .where(InventoryBatch.id != batch.id)
            .where(InventoryBatch.deleted_at.is_(None))
        ).first()
        if clash:
            raise ConflictError(f"Batch number {new_no} already exists in this store")
        batch.batch_no = new_no

    if fields.get("expiry_date") is not None:
        batch.expiry_date = fields["expiry_date"]
    if fields.get("quantity_on_hand") is not None:
        batch.quantity_on_hand = fields["quantity_on_hand"]
    if fields.get("unit_cost") is not None:
        batch.unit_cost = money(fields["unit_cost"])
    if fields.get("temperature") is not None:
        batch.temperature = fields["temperature"]

    refresh_batch_status(batch)
    db.flush()
    return batch


def delete_batch(db: Session, batch_id: int) -> None:
    batch = get_alive(db, InventoryBatch, batch_id, "Batch")
    batch.deleted_at = utcnow()
    db.flush()


def list_batches(
    db: Session,
    *,
    item_id: int | None = None,
    store_id: int | None = None,
    status: BatchStatus | None = None,
) -> list[InventoryBatch]:
    stmt = select(InventoryBatch).where(InventoryBatch.deleted_at.is_(None))
    if item_id is not None:
        stmt = stmt.where(InventoryBatch.item_id == item_id)
    if store_id is not None:
        stmt = stmt.where(InventoryBatch.store_id == store_id)
    if status is not None:
        stmt = stmt.where(InventoryBatch.status == status)
    return list(db.execute(stmt.order_by(InventoryBatch.expiry_date.asc(), InventoryBatch.id.asc())).scalars())


# ---------- MOUVEMENTS ----------
def record_transaction(
    db: Session,
    batch: InventoryBatch,
    transaction_type: TransactionType,
    quantity: int,
    *,
    reference_type: ReferenceType | None = None,
    reference_id: int | None = None,
    created_by: int | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    tx = InventoryTransaction(
        batch_id=batch.id,
        item_id=batch.item_id,
        transaction_type=transaction_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=created_by,
        notes=notes,
    )
    db.add(tx)
    return tx


def list_transactions(
    db: Session,
    *,
    transaction_type: TransactionType | None = None,
    item_id: int | None = None,
    batch_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[InventoryTransaction]:
    stmt = select(InventoryTransaction)
    if transaction_type is not None:
        stmt = stmt.where(InventoryTransaction.transaction_type == transaction_type)
    if item_id is not None:
        stmt = stmt.where(InventoryTransaction.item_id == item_id)
    if batch_id is not None:
        stmt = stmt.where(InventoryTransaction.batch_id == batch_id)
    if start is not None:
        stmt = stmt.where(InventoryTransaction.created_at >= start)
    if end is not None:
        stmt = stmt.where(InventoryTransaction.created_at <= end)
    return list(db.execute(stmt.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())).scalars())


# ---------- AJUSTEMENT ----------
def adjust_inventory(
    db: Session,
    *,
    item_id: int,
    store_id: int,
    batch_no: str,
    quantity_change: int,
    expiry_date: date | None = None,
    unit_cost: Decimal | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> InventoryBatch:
    """
    Ajustement manuel d'un lot.

    - change > 0 : ajoute au lot, ou le crée (expiry_date obligatoire)
    - change < 0 : le lot doit exister et rester >= 0
    """
    if quantity_change == 0:
        raise ServiceError("Quantity change cannot be zero")
    if not batch_no or not batch_no.strip():
        raise ServiceError("Batch number is required")

    item = get_alive(db, Item, item_id, "Item")
    get_alive(db, Store, store_id, "Store")
    batch_no = batch_no.strip()

    batch = find_batch(db, store_id=store_id, batch_no=batch_no)
    if batch is not None and batch.item_id != item.id:
        raise ConflictError(f"Batch {batch_no} belongs to another item")

    if quantity_change > 0:
        if batch is None:
            if expiry_date is None:
                raise ServiceError("Expiry date is required for a new batch")
            batch = InventoryBatch(
                item_id=item.id,
                store_id=store_id,
                batch_no=batch_no,
                expiry_date=expiry_date,
                quantity_on_hand=0,
                unit_cost=money(unit_cost) if unit_cost is not None else None,
            )
            db.add(batch)
        elif expiry_date is not None:
            batch.expiry_date = expiry_date
        batch.quantity_on_hand += quantity_change
    else:
        if batch is None:
            raise NotFoundError(f"Batch {batch_no} not found")
        new_qty = batch.quantity_on_hand + quantity_change
        if new_qty < 0:
            raise ServiceError(
                f"Insufficient quantity in batch {batch_no} (on hand={batch.quantity_on_hand})"
            )
        batch.quantity_on_hand = new_qty

    refresh_batch_status(batch, item)
    db.flush()

    record_transaction(
        db,
        batch,
        TransactionType.adjustment,
        quantity_change,
        reference_type=ReferenceType.adjustment,
        created_by=user_id,
        notes=notes,
    )
    db.flush()
    logger.info(
        "Inventory adjusted: item=%s store=%s batch=%s change=%+d -> %s",
        item.id, store_id, batch_no, quantity_change, batch.quantity_on_hand,
    )
    return batch
