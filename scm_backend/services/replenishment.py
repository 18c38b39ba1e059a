"""
Réassort : demandes de stock -> bons de commande.

Pipeline :
    1. détection des articles sous le stock de sécurité
    2. création des stock requests
    3. mapping fournisseur préféré par article
    4. regroupement par (magasin, fournisseur) + arrondi au MOQ
    5. PO en pending_approval
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from scm_backend.app.core.config import settings
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import (
    Item,
    Store,
    SupplierItem,
    PurchaseOrder,
    StockRequest,
)
from scm_backend.app.db.models.core_types import (
    POStatus,
    StockRequestStatus,
    StockRequestPriority,
)
from scm_backend.services.common import get_alive
from scm_backend.services.errors import ServiceError, InvalidTransitionError
from scm_backend.services.inventory import calculate_safety_stock, get_current_stock
from scm_backend.services.procurement import (
    POLine,
    round_to_moq,
    find_best_mapping_for_item,
    expected_delivery_for,
    create_purchase_order,
    approve_purchase_order,
    send_purchase_order,
)

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = 1


# ---------- STOCK REQUESTS ----------
def create_stock_request(
    db: Session,
    *,
    store_id: int,
    item_id: int,
    requested_qty: int,
    priority: StockRequestPriority = StockRequestPriority.medium,
    requested_by: int | None = None,
    notes: str | None = None,
) -> StockRequest:
    if requested_qty <= 0:
        raise ServiceError("Requested quantity must be greater than 0")
    get_alive(db, Store, store_id, "Store")
    get_alive(db, Item, item_id, "Item")

    req = StockRequest(
        store_id=store_id,
        item_id=item_id,
        requested_qty=requested_qty,
        priority=priority,
        requested_by=requested_by,
        notes=notes,
        status=StockRequestStatus.requested,
    )
    db.add(req)
    db.flush()
    return req


def get_stock_request(db: Session, request_id: int) -> StockRequest:
    return get_alive(db, StockRequest, request_id, "Stock request")


def list_stock_requests(
    db: Session,
    *,
    status: StockRequestStatus | None = None,
    store_id: int | None = None,
) -> list[StockRequest]:
    stmt = select(StockRequest)
    if status is not None:
        stmt = stmt.where(StockRequest.status == status)
    if store_id is not None:
        stmt = stmt.where(StockRequest.store_id == store_id)
    return list(db.execute(stmt.order_by(StockRequest.created_at.desc(), StockRequest.id.desc())).scalars())


def update_stock_request(
    db: Session,
    request_id: int,
    *,
    status: StockRequestStatus | None = None,
    po_id: int | None = None,
    notes: str | None = None,
) -> StockRequest:
    req = get_stock_request(db, request_id)

    if status is not None and status != req.status:
        allowed = {StockRequestStatus.cancelled, StockRequestStatus.po_generated}
        if req.status != StockRequestStatus.requested or status not in allowed:
            raise InvalidTransitionError("stock request", req.status.value, f"move to {status.value}")
        req.status = status

    if po_id is not None:
        get_alive(db, PurchaseOrder, po_id, "PO")
        req.po_id = po_id
    if notes is not None:
        req.notes = notes

    db.flush()
    return req


def cancel_requests(db: Session, request_ids: list[int]) -> dict:
    """Annule uniquement les demandes encore 'requested'."""
    if not request_ids:
        return {"cancelled": 0, "request_ids": []}
    rows = db.execute(
        select(StockRequest)
        .where(StockRequest.id.in_(request_ids))
        .where(StockRequest.status == StockRequestStatus.requested)
        .with_for_update()
    ).scalars().all()
    for req in rows:
        req.status = StockRequestStatus.cancelled
    db.flush()
    ids = sorted(r.id for r in rows)
    logger.info("Cancelled %d stock request(s): %s", len(ids), ids)
    return {"cancelled": len(ids), "request_ids": ids}


# ---------- GROUPING -> PO ----------
@dataclass
class _Group:
    store_id: int
    supplier_id: int
    lines: list[POLine] = field(default_factory=list)
    requests: list[StockRequest] = field(default_factory=list)
    expected: date | None = None


def _group_requests(
    db: Session,
    requests: list[StockRequest],
) -> tuple[dict[tuple[int, int], _Group], list[StockRequest]]:
    today = utcnow().date()
    groups: dict[tuple[int, int], _Group] = {}
    skipped: list[StockRequest] = []

    for req in requests:
        item = db.get(Item, req.item_id)
        if item is None or item.deleted_at is not None:
            logger.warning("Stock request %s skipped: item %s not found", req.id, req.item_id)
            skipped.append(req)
            continue

        mapping: SupplierItem | None = find_best_mapping_for_item(db, item.id, today)
        if mapping is None:
            logger.warning("Stock request %s skipped: no supplier mapping for item %s", req.id, item.id)
            skipped.append(req)
            continue

        key = (req.store_id, mapping.supplier_id)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(store_id=req.store_id, supplier_id=mapping.supplier_id)

        group.lines.append(
            POLine(
                item_id=item.id,
                quantity=round_to_moq(req.requested_qty, mapping.min_order_qty),
                unit_price=mapping.unit_price,
                unit=item.unit,
            )
        )
        group.requests.append(req)

        eta = expected_delivery_for(mapping, today)
        if group.expected is None or eta > group.expected:
            group.expected = eta

    return groups, skipped


def _create_pos(db: Session, groups: dict[tuple[int, int], _Group], notes: str | None) -> list[dict]:
    results = []
    for (store_id, supplier_id), group in groups.items():
        po = create_purchase_order(
            db,
            supplier_id=supplier_id,
            store_id=store_id,
            lines=group.lines,
            expected_delivery_date=group.expected,
            notes=notes or f"Generated from {len(group.requests)} stock request(s)",
            status=POStatus.pending_approval,
        )
        for req in group.requests:
            req.status = StockRequestStatus.po_generated
            req.po_id = po.id
        db.flush()

        request_ids = [r.id for r in group.requests]
        logger.info("PO %s generated for store=%s supplier=%s from requests %s", po.po_number, store_id, supplier_id, request_ids)
        results.append({"po_id": po.id, "po_number": po.po_number, "request_ids": request_ids})
    return results


def _open_requests(db: Session, *, ids: list[int] | None = None, store_id: int | None = None) -> list[StockRequest]:
    stmt = (
        select(StockRequest)
        .where(StockRequest.status == StockRequestStatus.requested)
        .order_by(StockRequest.id.asc())
        .with_for_update()
    )
    if ids is not None:
        stmt = stmt.where(StockRequest.id.in_(ids))
    if store_id is not None:
        stmt = stmt.where(StockRequest.store_id == store_id)
    return list(db.execute(stmt).scalars())


def generate_po_from_requests(db: Session, request_ids: list[int]) -> list[dict]:
    """
    PO à partir d'une sélection de demandes.
    Les demandes sans mapping sont laissées telles quelles (warning).
    """
    requests = _open_requests(db, ids=list(request_ids))
    if not requests:
        raise ServiceError("No open stock requests found for the given ids")

    groups, skipped = _group_requests(db, requests)
    if not groups:
        raise ServiceError(
            f"No purchase order could be generated: no supplier mapping for requests {[r.id for r in skipped]}"
        )
    return _create_pos(db, groups, None)


def auto_generate_po(db: Session, store_id: int | None = None) -> list[dict]:
    """
    PO pour toutes les demandes ouvertes.
    Les demandes sans mapping (ou article disparu) sont annulées.
    """
    requests = _open_requests(db, store_id=store_id)
    if not requests:
        return []

    groups, skipped = _group_requests(db, requests)
    for req in skipped:
        req.status = StockRequestStatus.cancelled
    db.flush()

    return _create_pos(db, groups, "Auto-generated from approved stock requests")


# ---------- AUTO-REPLENISH ----------
def _has_open_request(db: Session, item_id: int, store_id: int) -> bool:
    return db.execute(
        select(StockRequest.id)
        .where(StockRequest.item_id == item_id)
        .where(StockRequest.store_id == store_id)
        .where(StockRequest.status == StockRequestStatus.requested)
    ).first() is not None


def auto_replenish_below_safety_stock(db: Session, store_id: int | None = None) -> list[dict]:
    """
    Détecte les articles actifs sous le stock de sécurité, crée une demande
    (safety + REPLENISH_EXTRA_QTY) puis génère les PO en une passe.
    """
    if store_id is not None:
        stores = [get_alive(db, Store, store_id, "Store")]
    else:
        stores = list(
            db.execute(
                select(Store)
                .where(Store.is_active.is_(True))
                .where(Store.deleted_at.is_(None))
                .order_by(Store.id.asc())
            ).scalars()
        )

    items = list(
        db.execute(
            select(Item)
            .where(Item.is_active.is_(True))
            .where(Item.deleted_at.is_(None))
            .order_by(Item.id.asc())
        ).scalars()
    )

    created: list[tuple[StockRequest, int]] = []
    for store in stores:
        for item in items:
            try:
                with db.begin_nested():
                    safety = calculate_safety_stock(db, item.id, store.id)
                    current = get_current_stock(db, item.id, store.id)
                    if current >= safety:
                        continue
                    if _has_open_request(db, item.id, store.id):
                        logger.info("Item %s store %s below safety stock but already requested", item.id, store.id)
                        continue

                    req = create_stock_request(
                        db,
                        store_id=store.id,
                        item_id=item.id,
                        requested_qty=safety + settings.REPLENISH_EXTRA_QTY,
                        priority=StockRequestPriority.medium,
                        notes=f"Auto-generated: Below safety stock (Current: {current}, Safety: {safety})",
                    )
                    created.append((req, store.id))
                    logger.info(
                        "Stock request %s created for item %s store %s (current=%s safety=%s)",
                        req.id, item.id, store.id, current, safety,
                    )
            except Exception:
                logger.exception("Auto-replenish failed for item %s store %s", item.id, store.id)

    if not created:
        return []

    po_by_request: dict[int, int] = {}
    for sid in sorted({s for _, s in created}):
        for res in auto_generate_po(db, sid):
            for rid in res["request_ids"]:
                po_by_request[rid] = res["po_id"]

    return [
        {
            "item_id": req.item_id,
            "store_id": sid,
            "stock_request_id": req.id,
            "po_id": po_by_request.get(req.id),
        }
        for req, sid in created
    ]


# ---------- EXPRESS ----------
def express_order(
    db: Session,
    *,
    item_id: int,
    store_id: int,
    quantity: int,
    requested_by: int | None = None,
) -> PurchaseOrder:
    """
    Demande HIGH -> PO -> approbation -> envoi, dans la même transaction.
    """
    req = create_stock_request(
        db,
        store_id=store_id,
        item_id=item_id,
        requested_qty=quantity,
        priority=StockRequestPriority.high,
        requested_by=requested_by,
        notes="Express Order - Auto-approved and sent",
    )

    results = generate_po_from_requests(db, [req.id])
    po_id = results[0]["po_id"]

    approve_purchase_order(db, po_id, requested_by or SYSTEM_USER_ID)
    po = send_purchase_order(db, po_id)

    logger.info("Express order: request %s -> PO %s sent", req.id, po.po_number)
    return po
