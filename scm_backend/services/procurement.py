"""
Procurement : bons de commande fournisseurs.

Cycle de vie d'un PO :
    draft -> pending_approval -> approved -> sent -> confirmed -> delivered
    (pending_approval | sent) -> cancelled

Les services ne commitent jamais : l'endpoint (ou le job) porte la transaction.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from scm_backend.app.core.config import settings
from scm_backend.app.core.time_utils import utcnow
from scm_backend.app.db.models.models_v1 import (
    Item,
    Store,
    Supplier,
    SupplierItem,
    PurchaseOrder,
    PurchaseOrderItem,
)
from scm_backend.app.db.models.core_types import POStatus
from scm_backend.services.common import get_alive, money
from scm_backend.services.errors import (
    ServiceError,
    NotFoundError,
    ConflictError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = Decimal("0.01")  # 1 %
EDITABLE_STATUSES = {POStatus.draft, POStatus.pending_approval}
DELETABLE_STATUSES = {POStatus.draft, POStatus.pending_approval, POStatus.cancelled}
RECEIVABLE_STATUSES = {POStatus.sent, POStatus.confirmed}
DEFAULT_REJECTION_REASON = "Rejected by manager"


@dataclass
class POLine:
    item_id: int
    quantity: int
    unit_price: Decimal
    unit: str


# ---------- MAPPING FOURNISSEUR ----------
def round_to_moq(quantity: int, min_order_qty: int | None) -> int:
    moq = min_order_qty if min_order_qty and min_order_qty > 0 else 1
    if quantity <= moq:
        return moq
    return int(math.ceil(quantity / moq) * moq)


def _is_effective(mapping: SupplierItem, on: date) -> bool:
    if mapping.effective_from is not None and mapping.effective_from > on:
        return False
    if mapping.effective_to is not None and mapping.effective_to < on:
        return False
    return True


def find_best_mapping_for_item(db: Session, item_id: int, at: date | None = None) -> SupplierItem | None:
    """
    Mapping fournisseur retenu pour un article.

    Parmi les mappings actifs (fournisseur non supprimé) : ceux valides à la
    date, sinon tous ; le préféré d'abord, sinon le moins cher.
    """
    at = at or utcnow().date()
    mappings = list(
        db.execute(
            select(SupplierItem)
            .join(Supplier, Supplier.id == SupplierItem.supplier_id)
            .where(SupplierItem.item_id == item_id)
            .where(SupplierItem.is_active.is_(True))
            .where(Supplier.deleted_at.is_(None))
            .order_by(SupplierItem.id.asc())
        ).scalars()
    )
    if not mappings:
        return None

    candidates = [m for m in mappings if _is_effective(m, at)] or mappings

    for m in candidates:
        if m.is_preferred:
            return m
    return min(candidates, key=lambda m: (m.unit_price, m.id))


def expected_delivery_for(mapping: SupplierItem, order_date: date) -> date:
    # mapping > fournisseur > défaut ; jamais 0 jour
    lead = mapping.lead_time_days
    if not lead or lead <= 0:
        lead = mapping.supplier.lead_time_days if mapping.supplier else 0
    if not lead or lead <= 0:
        lead = settings.DEFAULT_DELIVERY_DAYS
    return order_date + timedelta(days=lead)


# ---------- CREATION ----------
def generate_po_number(db: Session) -> str:
    # compte aussi les PO soft-deleted : le numéro reste unique
    n = int(db.execute(select(func.count(PurchaseOrder.id))).scalar_one()) + 1
    while db.execute(select(PurchaseOrder.id).where(PurchaseOrder.po_number == f"PO-{n}")).first():
        n += 1
    return f"PO-{n}"


def create_purchase_order(
    db: Session,
    *,
    supplier_id: int,
    store_id: int,
    lines: list[POLine],
    po_number: str | None = None,
    order_date: date | None = None,
    expected_delivery_date: date | None = None,
    total_amount: Decimal | None = None,
    notes: str | None = None,
    status: POStatus = POStatus.draft,
) -> PurchaseOrder:
    if status not in EDITABLE_STATUSES:
        raise ServiceError("A purchase order can only be created as draft or pending_approval")

    get_alive(db, Supplier, supplier_id, "Supplier")
    get_alive(db, Store, store_id, "Store")

    if not lines:
        raise ServiceError("Purchase order must have at least one item")

    if po_number is None:
        po_number = generate_po_number(db)
    po_number = po_number.strip()
    if not po_number:
        raise ServiceError("PO number is required")
    exists = db.execute(select(PurchaseOrder.id).where(PurchaseOrder.po_number == po_number)).first()
    if exists:
        raise ConflictError(f"PO number {po_number} already exists")

    order_date = order_date or utcnow().date()
    if expected_delivery_date is not None and expected_delivery_date <= order_date:
        raise ServiceError("Expected delivery date must be after order date")

    computed = Decimal("0")
    for ln in lines:
        if ln.quantity <= 0:
            raise ServiceError(f"Quantity must be greater than 0 (item {ln.item_id})")
        if ln.unit_price is None or money(ln.unit_price) <= 0:
            raise ServiceError(f"Unit price must be greater than 0 (item {ln.item_id})")
        if not ln.unit or not ln.unit.strip():
            raise ServiceError(f"Unit is required (item {ln.item_id})")
        get_alive(db, Item, ln.item_id, "Item")
        computed += money(ln.unit_price) * ln.quantity

    computed = money(computed)
    if total_amount is None:
        total_amount = computed
    total_amount = money(total_amount)
    if total_amount <= 0:
        raise ServiceError("Total amount must be greater than 0")
    if abs(total_amount - computed) > computed * TOTAL_TOLERANCE:
        raise ServiceError(
            f"Total amount {total_amount} does not match line total {computed}"
        )

    po = PurchaseOrder(
        po_number=po_number,
        supplier_id=supplier_id,
        store_id=store_id,
        order_date=order_date,
        expected_delivery_date=expected_delivery_date,
        status=status,
        total_amount=total_amount,
        notes=notes,
    )
    db.add(po)
    db.flush()  # po.id

    for ln in lines:
        price = money(ln.unit_price)
        po.items.append(
            PurchaseOrderItem(
                item_id=ln.item_id,
                quantity=ln.quantity,
                unit_price=price,
                total_amount=money(price * ln.quantity),
                unit=ln.unit.strip(),
            )
        )
    db.flush()

    logger.info("PO %s created (supplier=%s store=%s status=%s)", po.po_number, supplier_id, store_id, status.value)
    return po


# ---------- LECTURE ----------
def get_purchase_order(db: Session, po_id: int, *, lock: bool = False) -> PurchaseOrder:
    stmt = (
        select(PurchaseOrder)
        .where(PurchaseOrder.id == po_id)
        .where(PurchaseOrder.deleted_at.is_(None))
    )
    if lock:
        stmt = stmt.with_for_update()
    po = db.execute(stmt).scalar_one_or_none()
    if po is None:
        raise NotFoundError(f"PO {po_id} not found")
    return po


def list_purchase_orders(
    db: Session,
    *,
    supplier_id: int | None = None,
    store_id: int | None = None,
    status: POStatus | None = None,
) -> list[PurchaseOrder]:
    stmt = select(PurchaseOrder).where(PurchaseOrder.deleted_at.is_(None))
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    if store_id is not None:
        stmt = stmt.where(PurchaseOrder.store_id == store_id)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    return list(db.execute(stmt.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())).scalars())


def list_pending_approvals(db: Session) -> list[PurchaseOrder]:
    return list(
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.deleted_at.is_(None))
            .where(PurchaseOrder.status == POStatus.pending_approval)
            .order_by(PurchaseOrder.created_at.asc(), PurchaseOrder.id.asc())
        ).scalars()
    )


def update_purchase_order(
    db: Session,
    po_id: int,
    *,
    notes: str | None = None,
    expected_delivery_date: date | None = None,
) -> PurchaseOrder:
    """Le statut ne change que par les transitions dédiées."""
    po = get_purchase_order(db, po_id, lock=True)
    if po.status not in EDITABLE_STATUSES:
        raise InvalidTransitionError("PO", po.status.value, "update")
    if expected_delivery_date is not None:
        if expected_delivery_date <= po.order_date:
            raise ServiceError("Expected delivery date must be after order date")
        po.expected_delivery_date = expected_delivery_date
    if notes is not None:
        po.notes = notes
    db.flush()
    return po


def delete_purchase_order(db: Session, po_id: int) -> None:
    po = get_purchase_order(db, po_id, lock=True)
    if po.status not in DELETABLE_STATUSES:
        raise InvalidTransitionError("PO", po.status.value, "delete")
    po.deleted_at = utcnow()
    db.flush()


# ---------- TRANSITIONS ----------
def _transition(db: Session, po_id: int, expected: set[POStatus], action: str) -> PurchaseOrder:
    po = get_purchase_order(db, po_id, lock=True)
    if po.status not in expected:
        raise InvalidTransitionError("PO", po.status.value, action)
    return po


def submit_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.draft}, "submit")
    po.status = POStatus.pending_approval
    db.flush()
    logger.info("PO %s submitted for approval", po.po_number)
    return po


def approve_purchase_order(db: Session, po_id: int, approver_id: int | None) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.pending_approval}, "approve")
    po.status = POStatus.approved
    po.approved_by = approver_id
    po.approved_at = utcnow()
    db.flush()
    logger.info("PO %s approved by user %s", po.po_number, approver_id)
    return po


def reject_purchase_order(
    db: Session,
    po_id: int,
    approver_id: int | None,
    reason: str | None = None,
) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.pending_approval}, "reject")
    po.status = POStatus.cancelled
    po.approved_by = approver_id
    po.approved_at = utcnow()
    po.rejection_reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
    db.flush()
    logger.info("PO %s rejected by user %s: %s", po.po_number, approver_id, po.rejection_reason)
    return po


def send_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.approved}, "send")
    po.status = POStatus.sent
    db.flush()
    logger.info("PO %s sent to supplier %s", po.po_number, po.supplier_id)
    return po


def confirm_purchase_order(
    db: Session,
    po_id: int,
    user_id: int | None,
    *,
    expected_delivery_date: date | None = None,
    supplier_notes: str | None = None,
) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.sent}, "confirm")
    if expected_delivery_date is not None:
        if expected_delivery_date <= po.order_date:
            raise ServiceError("Expected delivery date must be after order date")
        po.expected_delivery_date = expected_delivery_date
    if supplier_notes is not None:
        po.supplier_notes = supplier_notes
    po.status = POStatus.confirmed
    po.confirmed_by = user_id
    po.confirmed_at = utcnow()
    db.flush()
    logger.info("PO %s confirmed by supplier", po.po_number)
    return po


def receive_purchase_order(db: Session, po_id: int, user_id: int | None) -> PurchaseOrder:
    po = _transition(db, po_id, {POStatus.sent}, "receive")
    now = utcnow()
    po.status = POStatus.confirmed
    po.confirmed_by = user_id
    po.confirmed_at = now
    po.actual_delivery_date = now
    db.flush()
    logger.info("PO %s received at store %s", po.po_number, po.store_id)
    return po


def reject_receipt(db: Session, po_id: int, user_id: int | None, reason: str) -> PurchaseOrder:
    if not reason or not reason.strip():
        raise ServiceError("Rejection reason is required")
    po = _transition(db, po_id, {POStatus.sent}, "reject receipt of")
    po.status = POStatus.cancelled
    po.confirmed_by = user_id
    po.confirmed_at = utcnow()
    po.rejection_reason = reason.strip()
    db.flush()
    logger.info("PO %s receipt rejected: %s", po.po_number, po.rejection_reason)
    return po


def mark_delivered(db: Session, po: PurchaseOrder) -> PurchaseOrder:
    if po.status not in RECEIVABLE_STATUSES:
        raise InvalidTransitionError("PO", po.status.value, "deliver")
    po.status = POStatus.delivered
    if po.actual_delivery_date is None:
        po.actual_delivery_date = utcnow()
    db.flush()
    return po


def po_to_dict(po: PurchaseOrder, *, with_items: bool = True) -> dict:
    data = {
        "id": po.id,
        "po_number": po.po_number,
        "supplier_id": po.supplier_id,
        "store_id": po.store_id,
        "status": po.status,
        "order_date": po.order_date,
        "expected_delivery_date": po.expected_delivery_date,
        "total_amount": float(po.total_amount),
        "notes": po.notes,
        "approved_by": po.approved_by,
        "approved_at": po.approved_at,
        "rejection_reason": po.rejection_reason,
        "confirmed_by": po.confirmed_by,
        "confirmed_at": po.confirmed_at,
        "actual_delivery_date": po.actual_delivery_date,
        "supplier_notes": po.supplier_notes,
        "created_at": po.created_at,
    }
    if with_items:
        data["items"] = [
            {
                "id": ln.id,
                "item_id": ln.item_id,
                "quantity": ln.quantity,
                "unit_price": float(ln.unit_price),
                "total_amount": float(ln.total_amount),
                "unit": ln.unit,
            }
            for ln in po.items
        ]
    return data
