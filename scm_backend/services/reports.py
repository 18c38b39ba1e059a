from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from scm_backend.app.core.time_utils import utcnow, today
from scm_backend.app.db.models.models_v1 import (
    Item,
    InventoryBatch,
    PurchaseOrder,
    SalesTransaction,
)
from scm_backend.app.db.models.core_types import BatchStatus, POStatus
from scm_backend.services.common import money
from scm_backend.services.inventory import (
    DEFAULT_MIN_STOCK_LEVEL,
    calculate_safety_stock,
    get_current_stock,
)

logger = logging.getLogger(__name__)

GROSS_PROFIT_DAYS = 30
TOP_BELOW_SAFETY = 10
MAX_REPORT_TRANSACTIONS = 100


def _margin(revenue: Decimal, profit: Decimal) -> float:
    if revenue <= 0:
        return 0.0
    return round(float(profit / revenue * 100), 2)


def _live_batches():
    return select(InventoryBatch).where(InventoryBatch.deleted_at.is_(None))


def _batch_row(b: InventoryBatch) -> dict:
    return {
        "id": b.id,
        "item_id": b.item_id,
        "item_name": b.item.item_name if b.item else None,
        "sku": b.item.sku if b.item else None,
        "store_id": b.store_id,
        "batch_no": b.batch_no,
        "expiry_date": b.expiry_date,
        "quantity_on_hand": b.quantity_on_hand,
        "unit_cost": float(b.unit_cost) if b.unit_cost is not None else None,
        "temperature": b.temperature,
        "status": b.status,
    }


def inventory_value(db: Session) -> Decimal:
    value = db.execute(
        select(func.coalesce(func.sum(InventoryBatch.quantity_on_hand * InventoryBatch.unit_cost), 0))
        .where(InventoryBatch.deleted_at.is_(None))
        .where(InventoryBatch.unit_cost > 0)
    ).scalar_one()
    return money(value)


def items_below_safety_stock(db: Session, store_id: int | None = None) -> list[dict]:
    items = db.execute(
        select(Item).where(Item.is_active.is_(True)).where(Item.deleted_at.is_(None)).order_by(Item.id)
    ).scalars()

    rows = []
    for item in items:
        safety = calculate_safety_stock(db, item.id, store_id)
        current = get_current_stock(db, item.id, store_id)
        if current < safety:
            rows.append(
                {
                    "item_id": item.id,
                    "item_name": item.item_name,
                    "sku": item.sku,
                    "current_stock": current,
                    "safety_stock": safety,
                    "difference": safety - current,
                }
            )
    rows.sort(key=lambda r: r["difference"], reverse=True)
    return rows


def _sales_totals(sales: list[SalesTransaction]) -> tuple[Decimal, Decimal]:
    revenue = sum((s.total_amount or Decimal("0") for s in sales), Decimal("0"))
    cost = sum((s.total_cost or Decimal("0") for s in sales), Decimal("0"))
    return revenue, cost


def dashboard(db: Session, *, now: datetime | None = None) -> dict:
    logger.info("Generating dashboard data")
    now = now or utcnow()

    status_counts = dict(
        db.execute(
            select(InventoryBatch.status, func.count(InventoryBatch.id))
            .where(InventoryBatch.deleted_at.is_(None))
            .group_by(InventoryBatch.status)
        ).all()
    )
    stock_out_risk = db.execute(
        select(func.count(InventoryBatch.id))
        .where(InventoryBatch.deleted_at.is_(None))
        .where(
            (InventoryBatch.quantity_on_hand == 0)
            | (InventoryBatch.status == BatchStatus.out_of_stock)
        )
    ).scalar_one()
    pending = db.execute(
        select(func.count(PurchaseOrder.id))
        .where(PurchaseOrder.deleted_at.is_(None))
        .where(PurchaseOrder.status == POStatus.pending_approval)
    ).scalar_one()

    recent = list(
        db.execute(
            select(SalesTransaction).where(SalesTransaction.sale_date >= now - timedelta(days=GROSS_PROFIT_DAYS))
        ).scalars()
    )
    revenue, cost = _sales_totals(recent)
    profit = revenue - cost

    below = items_below_safety_stock(db)

    return {
        "total_inventory_value": float(inventory_value(db)),
        "low_stock_items": status_counts.get(BatchStatus.low_stock, 0) + status_counts.get(BatchStatus.out_of_stock, 0),
        "pending_po_approvals": pending,
        "stock_out_risk": stock_out_risk,
        "gross_profit": {
            "total_revenue": float(money(revenue)),
            "total_cost": float(money(cost)),
            "gross_profit": float(money(profit)),
            "margin": _margin(revenue, profit),
            "period": f"{GROSS_PROFIT_DAYS} days",
        },
        "items_below_safety_stock": below[:TOP_BELOW_SAFETY],
        "items_below_safety_stock_count": len(below),
    }


def inventory_report(db: Session) -> dict:
    batches = list(db.execute(_live_batches().order_by(InventoryBatch.created_at.desc())).scalars())
    return {
        "total_items": len(batches),
        "in_stock": sum(1 for b in batches if b.status == BatchStatus.in_stock),
        "low_stock": sum(1 for b in batches if b.status == BatchStatus.low_stock),
        "out_of_stock": sum(1 for b in batches if b.status == BatchStatus.out_of_stock),
        "expired": sum(1 for b in batches if b.status == BatchStatus.expired),
        "batches": [_batch_row(b) for b in batches],
    }


def procurement_report(db: Session) -> dict:
    orders = list(
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.deleted_at.is_(None))
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        ).scalars()
    )
    by_status = {s.value: 0 for s in POStatus}
    for o in orders:
        by_status[o.status.value] += 1

    return {
        "total_orders": len(orders),
        "by_status": by_status,
        "total_value": float(money(sum((o.total_amount for o in orders), Decimal("0")))),
        "orders": [
            {
                "id": o.id,
                "po_number": o.po_number,
                "supplier_id": o.supplier_id,
                "store_id": o.store_id,
                "status": o.status,
                "total_amount": float(o.total_amount),
                "order_date": o.order_date,
                "expected_delivery_date": o.expected_delivery_date,
            }
            for o in orders
        ],
    }


def _sale_row(s: SalesTransaction) -> dict:
    return {
        "id": s.id,
        "store_id": s.store_id,
        "item_id": s.item_id,
        "item_name": s.item.item_name if s.item else None,
        "quantity": s.quantity,
        "total_amount": float(s.total_amount),
        "total_cost": float(s.total_cost or 0),
        "gross_profit": float(s.gross_profit or 0),
        "sale_date": s.sale_date,
    }


def _sales(db: Session, store_id: int | None, start: datetime | None = None, end: datetime | None = None):
    stmt = select(SalesTransaction)
    if store_id is not None:
        stmt = stmt.where(SalesTransaction.store_id == store_id)
    if start is not None:
        stmt = stmt.where(SalesTransaction.sale_date >= start)
    if end is not None:
        stmt = stmt.where(SalesTransaction.sale_date <= end)
    return list(db.execute(stmt.order_by(SalesTransaction.sale_date.desc(), SalesTransaction.id.desc())).scalars())


def sales_report(db: Session, store_id: int | None = None) -> dict:
    sales = _sales(db, store_id)
    revenue, _ = _sales_totals(sales)
    return {
        "total_transactions": len(sales),
        "total_revenue": float(money(revenue)),
        "total_quantity": sum(s.quantity for s in sales),
        "transactions": [_sale_row(s) for s in sales],
    }


def low_stock_alerts(db: Session) -> list[dict]:
    batches = db.execute(
        _live_batches()
        .where(InventoryBatch.status.in_((BatchStatus.low_stock, BatchStatus.out_of_stock)))
        .order_by(InventoryBatch.quantity_on_hand.asc(), InventoryBatch.id.asc())
    ).scalars()
    return [
        {
            "item_id": b.item_id,
            "item_name": b.item.item_name if b.item else None,
            "sku": b.item.sku if b.item else None,
            "batch_no": b.batch_no,
            "current_stock": b.quantity_on_hand,
            "min_stock_level": (b.item.min_stock_level if b.item else None) or DEFAULT_MIN_STOCK_LEVEL,
            "status": b.status,
            "store_id": b.store_id,
        }
        for b in batches
    ]


def _bucket(label_key: str, label) -> dict:
    return {label_key: label, "quantity": 0, "revenue": Decimal("0"), "cost": Decimal("0")}


def _close_bucket(b: dict) -> dict:
    profit = b["revenue"] - b["cost"]
    return {
        **b,
        "revenue": float(money(b["revenue"])),
        "cost": float(money(b["cost"])),
        "gross_profit": float(money(profit)),
        "margin": _margin(b["revenue"], profit),
    }


def gross_profit_report(
    db: Session,
    *,
    store_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    sales = _sales(db, store_id, start, end)
    revenue, cost = _sales_totals(sales)
    profit = revenue - cost

    by_item: dict[int, dict] = {}
    by_date: "OrderedDict[str, dict]" = OrderedDict()
    for s in sales:
        ib = by_item.get(s.item_id)
        if ib is None:
            ib = by_item[s.item_id] = _bucket("item_id", s.item_id)
            ib["item_name"] = s.item.item_name if s.item else "Unknown"
            ib["sku"] = s.item.sku if s.item else ""
        key = s.sale_date.date().isoformat()
        day = by_date.get(key)
        if day is None:
            day = by_date[key] = _bucket("date", key)
        for bucket in (ib, day):
            bucket["quantity"] += s.quantity
            bucket["revenue"] += s.total_amount or Decimal("0")
            bucket["cost"] += s.total_cost or Decimal("0")

    items = sorted((_close_bucket(b) for b in by_item.values()), key=lambda r: r["gross_profit"], reverse=True)
    dates = sorted((_close_bucket(b) for b in by_date.values()), key=lambda r: r["date"], reverse=True)

    return {
        "summary": {
            "total_transactions": len(sales),
            "total_revenue": float(money(revenue)),
            "total_cost": float(money(cost)),
            "total_gross_profit": float(money(profit)),
            "gross_profit_margin": _margin(revenue, profit),
        },
        "by_item": items,
        "by_date": dates,
        "transactions": [_sale_row(s) for s in sales[:MAX_REPORT_TRANSACTIONS]],
    }


def expiry_status(days_until_expiry: int) -> str:
    if days_until_expiry < 0:
        return "expired"
    if days_until_expiry == 0:
        return "expires_today"
    return "near_expiry"


def expired_items_report(db: Session, days_threshold: int = 7, *, on: date | None = None) -> list[dict]:
    on = on or today()
    limit = on + timedelta(days=days_threshold)
    batches = db.execute(
        _live_batches()
        .where(InventoryBatch.expiry_date <= limit)
        .order_by(InventoryBatch.expiry_date.asc(), InventoryBatch.id.asc())
    ).scalars()

    rows = []
    for b in batches:
        days = (b.expiry_date - on).days
        rows.append(
            {
                "item_id": b.item_id,
                "item_name": b.item.item_name if b.item else "N/A",
                "sku": b.item.sku if b.item else "N/A",
                "batch_no": b.batch_no,
                "store_id": b.store_id,
                "expiry_date": b.expiry_date,
                "days_until_expiry": days,
                "quantity_on_hand": b.quantity_on_hand,
                "status": expiry_status(days),
            }
        )
    return rows
