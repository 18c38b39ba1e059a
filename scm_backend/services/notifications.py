from __future__ import annotations

import logging
from datetime import datetime, time

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import InventoryBatch, PurchaseOrder, StockRequest
from scm_backend.app.db.models.core_types import (
    BatchStatus,
    POStatus,
    RoleCode,
    StockRequestStatus,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}
STOCK_ALERT_LIMIT = 10
SHELF_LIFE_WARNING = 0.8


def _plural(n: int, word: str, suffix: str = "s") -> str:
    return f"{n} {word}{suffix if n > 1 else ''}"


def _notification(key: str, title: str, message: str, priority: str, link: str, count: int, now: datetime) -> dict:
    return {
        "id": key,
        "type": key,
        "title": title,
        "message": message,
        "priority": priority,
        "link": link,
        "created_at": now,
        "count": count,
    }


def shelf_life_used(batch: InventoryBatch, now: datetime) -> float | None:
    """Part de la durée de vie écoulée (0..1), depuis l'entrée en stock."""
    expiry = datetime.combine(batch.expiry_date, time.min)
    total = (expiry - batch.created_at).total_seconds()
    if total <= 0:
        return None
    return (now - batch.created_at).total_seconds() / total


def notifications_for(db: Session, role: str, *, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    out: list[dict] = []

    if role in (RoleCode.store_manager.value, RoleCode.admin.value):
        pending = db.execute(
            select(func.count(PurchaseOrder.id))
            .where(PurchaseOrder.deleted_at.is_(None))
            .where(PurchaseOrder.status == POStatus.pending_approval)
        ).scalar_one()
        if pending:
            out.append(
                _notification(
                    "po_approval",
                    "Purchase Orders Pending Approval",
                    f"{_plural(pending, 'purchase order')} waiting for your approval",
                    "high",
                    "/procurement?status=pending_approval",
                    pending,
                    now,
                )
            )

    # lots les plus critiques uniquement
    critical = list(
        db.execute(
            select(InventoryBatch)
            .where(InventoryBatch.deleted_at.is_(None))
            .where(InventoryBatch.status.in_((BatchStatus.low_stock, BatchStatus.out_of_stock)))
            .order_by(InventoryBatch.quantity_on_hand.asc(), InventoryBatch.id.asc())
            .limit(STOCK_ALERT_LIMIT)
        ).scalars()
    )
    out_count = sum(1 for b in critical if b.status == BatchStatus.out_of_stock)
    low_count = sum(1 for b in critical if b.status == BatchStatus.low_stock)
    if out_count:
        out.append(
            _notification(
                "out_of_stock",
                "Out of Stock Items",
                f"{_plural(out_count, 'item')} out of stock",
                "high",
                "/inventory?status=out_of_stock",
                out_count,
                now,
            )
        )
    if low_count:
        out.append(
            _notification(
                "low_stock",
                "Low Stock Alerts",
                f"{_plural(low_count, 'item')} running low on stock",
                "medium",
                "/inventory?status=low_stock",
                low_count,
                now,
            )
        )

    if role in (RoleCode.procurement_staff.value, RoleCode.admin.value):
        open_requests = db.execute(
            select(func.count(StockRequest.id)).where(StockRequest.status == StockRequestStatus.requested)
        ).scalar_one()
        if open_requests:
            out.append(
                _notification(
                    "stock_request",
                    "Pending Stock Requests",
                    f"{_plural(open_requests, 'stock request')} waiting to be ordered",
                    "medium",
                    "/stock-requests?status=requested",
                    open_requests,
                    now,
                )
            )

    in_stock = db.execute(
        select(InventoryBatch)
        .where(InventoryBatch.deleted_at.is_(None))
        .where(InventoryBatch.status == BatchStatus.in_stock)
        .where(InventoryBatch.quantity_on_hand > 0)
    ).scalars()
    expiring = 0
    for b in in_stock:
        used = shelf_life_used(b, now)
        if used is not None and SHELF_LIFE_WARNING <= used < 1:
            expiring += 1
    if expiring:
        out.append(
            _notification(
                "expiry_warning",
                "Items Approaching Expiry",
                f"{_plural(expiring, 'batch', 'es')} approaching 80% of shelf life",
                "high",
                "/inventory?filter=expiry_warning",
                expiring,
                now,
            )
        )

    out.sort(key=lambda n: (PRIORITY_RANK[n["priority"]], n["created_at"]), reverse=True)
    return out
