from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import (
    Item,
    Store,
    InventoryBatch,
    SalesTransaction,
)
from scm_backend.app.db.models.core_types import BatchStatus, TransactionType, ReferenceType
from scm_backend.services.common import get_alive, money
from scm_backend.services.errors import ServiceError
from scm_backend.services.inventory import record_transaction, refresh_batch_status

logger = logging.getLogger(__name__)

CONSUMABLE_STATUSES = (BatchStatus.in_stock, BatchStatus.low_stock)


def consumable_batches(db: Session, item_id: int, store_id: int) -> list[InventoryBatch]:
    """Lots vendables, ordre FIFO : péremption la plus proche, puis plus ancien."""
    return list(
        db.execute(
            select(InventoryBatch)
            .where(InventoryBatch.item_id == item_id)
            .where(InventoryBatch.store_id == store_id)
            .where(InventoryBatch.deleted_at.is_(None))
            .where(InventoryBatch.status.in_(CONSUMABLE_STATUSES))
            .where(InventoryBatch.quantity_on_hand > 0)
            .order_by(
                InventoryBatch.expiry_date.asc(),
                InventoryBatch.created_at.asc(),
                InventoryBatch.id.asc(),
            )
            .with_for_update()
        ).scalars()
    )


def find_sale_by_key(db: Session, idempotency_key: str) -> SalesTransaction | None:
    return db.execute(
        select(SalesTransaction).where(SalesTransaction.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


def create_sale(
    db: Session,
    *,
    store_id: int,
    item_id: int,
    quantity: int,
    unit_price: Decimal,
    sale_date: datetime | None = None,
    user_id: int | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> SalesTransaction:
    """
    Vente avec déstockage FIFO.

    Coût = somme(qty prise x unit_cost du lot). Si le stock vendable est
    insuffisant, rien n'est modifié.
    """
    if idempotency_key:
        existing = find_sale_by_key(db, idempotency_key)
        if existing:
            return existing

    if quantity <= 0:
        raise ServiceError("Quantity must be greater than 0")
    if unit_price is None or Decimal(unit_price) < 0:
        raise ServiceError("Unit price cannot be negative")

    item = get_alive(db, Item, item_id, "Item")
    get_alive(db, Store, store_id, "Store")

    batches = consumable_batches(db, item.id, store_id)
    available = sum(b.quantity_on_hand for b in batches)
    if available < quantity:
        raise ServiceError(
            f"Insufficient stock for item {item.id} in store {store_id} "
            f"(available={available}, requested={quantity})"
        )

    unit_price = money(unit_price)
    sale = SalesTransaction(
        store_id=store_id,
        item_id=item.id,
        quantity=quantity,
        unit_price=unit_price,
        total_amount=money(unit_price * quantity),
        sale_date=sale_date or utcnow(),
        created_by=user_id,
        notes=notes,
        idempotency_key=idempotency_key,
    )
    db.add(sale)
    db.flush()  # sale.id pour les mouvements

    remaining = quantity
    total_cost = Decimal("0")
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.quantity_on_hand, remaining)
        batch.quantity_on_hand -= take
        remaining -= take
        total_cost += (batch.unit_cost or Decimal("0")) * take
        refresh_batch_status(batch, item)

        record_transaction(
            db,
            batch,
            TransactionType.issue,
            -take,
            reference_type=ReferenceType.sales,
            reference_id=sale.id,
            created_by=user_id,
        )

    sale.total_cost = money(total_cost)
    sale.cost_price = money(total_cost / quantity)
    sale.gross_profit = money(sale.total_amount - sale.total_cost)
    db.flush()

    logger.info(
        "Sale %s: item=%s store=%s qty=%s revenue=%s cost=%s",
        sale.id, item.id, store_id, quantity, sale.total_amount, sale.total_cost,
    )
    return sale


def get_sale(db: Session, sale_id: int) -> SalesTransaction:
    return get_alive(db, SalesTransaction, sale_id, "Sale")


def list_sales(db: Session, *, store_id: int | None = None) -> list[SalesTransaction]:
    stmt = select(SalesTransaction)
    if store_id is not None:
        stmt = stmt.where(SalesTransaction.store_id == store_id)
    return list(db.execute(stmt.order_by(SalesTransaction.sale_date.desc(), SalesTransaction.id.desc())).scalars())


def sale_to_dict(s: SalesTransaction) -> dict:
    return {
        "id": s.id,
        "store_id": s.store_id,
        "item_id": s.item_id,
        "quantity": s.quantity,
        "unit_price": float(s.unit_price),
        "total_amount": float(s.total_amount),
        "cost_price": float(s.cost_price) if s.cost_price is not None else None,
        "total_cost": float(s.total_cost) if s.total_cost is not None else None,
        "gross_profit": float(s.gross_profit) if s.gross_profit is not None else None,
        "sale_date": s.sale_date,
        "created_by": s.created_by,
        "notes": s.notes,
    }
