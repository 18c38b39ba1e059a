from datetime import timedelta
from decimal import Decimal

import pytest

from scm_backend.app.core.time_utils import today
from scm_backend.app.db.models.core_types import POStatus, RoleCode
from scm_backend.services.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
)
from scm_backend.services.procurement import (
    POLine,
    approve_purchase_order,
    confirm_purchase_order,
    create_purchase_order,
    delete_purchase_order,
    get_purchase_order,
    list_pending_approvals,
    receive_purchase_order,
    reject_purchase_order,
    reject_receipt,
    send_purchase_order,
    submit_purchase_order,
    update_purchase_order,
)


@pytest.fixture
def supplier(make_supplier):
    return make_supplier()


@pytest.fixture
def item(make_item):
    return make_item()


def _po(db_session, supplier, store, item, **kwargs):
    lines = kwargs.pop("lines", [POLine(item_id=item.id, quantity=10, unit_price=Decimal("12.50"), unit="box")])
    return create_purchase_order(
        db_session,
        supplier_id=supplier.id,
        store_id=store.id,
        lines=lines,
        **kwargs,
    )


# ---------- CREATION ----------
def test_create_po_computes_total_and_number(db_session, supplier, store, item):
    po1 = _po(db_session, supplier, store, item)
    po2 = _po(db_session, supplier, store, item)

    assert po1.po_number == "PO-1"
    assert po2.po_number == "PO-2"
    assert po1.status == POStatus.draft
    assert po1.total_amount == Decimal("125.00")
    assert po1.items[0].total_amount == Decimal("125.00")
    assert po1.order_date == today()


def test_create_po_accepts_total_within_one_percent(db_session, supplier, store, item):
    po = _po(db_session, supplier, store, item, total_amount=Decimal("126.00"))
    assert po.total_amount == Decimal("126.00")


def test_create_po_rejects_total_mismatch(db_session, supplier, store, item):
    with pytest.raises(ServiceError, match="does not match"):
        _po(db_session, supplier, store, item, total_amount=Decimal("130.00"))


def test_create_po_requires_lines(db_session, supplier, store, item):
    with pytest.raises(ServiceError, match="at least one item"):
        _po(db_session, supplier, store, item, lines=[])


def test_create_po_rejects_bad_line(db_session, supplier, store, item):
    bad = [POLine(item_id=item.id, quantity=0, unit_price=Decimal("1.00"), unit="box")]
    with pytest.raises(ServiceError, match="Quantity"):
        _po(db_session, supplier, store, item, lines=bad)


def test_create_po_rejects_price_rounding_to_zero(db_session, supplier, store, item):
    tiny = [POLine(item_id=item.id, quantity=5, unit_price=Decimal("0.004"), unit="box")]
    with pytest.raises(ServiceError, match="Unit price"):
        _po(db_session, supplier, store, item, lines=tiny)


def test_create_po_rejects_delivery_before_order(db_session, supplier, store, item):
    with pytest.raises(ServiceError, match="after order date"):
        _po(db_session, supplier, store, item, expected_delivery_date=today())


def test_create_po_duplicate_number(db_session, supplier, store, item):
    _po(db_session, supplier, store, item, po_number="PO-MANUAL")
    with pytest.raises(ConflictError):
        _po(db_session, supplier, store, item, po_number="PO-MANUAL")


def test_create_po_unknown_supplier(db_session, store, item, supplier):
    with pytest.raises(NotFoundError):
        create_purchase_order(
            db_session,
            supplier_id=supplier.id + 999,
            store_id=store.id,
            lines=[POLine(item_id=item.id, quantity=1, unit_price=Decimal("1"), unit="box")],
        )


# ---------- CYCLE DE VIE ----------
def test_po_full_lifecycle(db_session, supplier, store, item, users):
    """
    GIVEN
    - un PO draft

    THEN
    - submit -> approve -> send -> confirm
    - chaque étape trace l'utilisateur et la date
    """
    manager = users[RoleCode.store_manager]
    admin = users[RoleCode.admin]
    po = _po(db_session, supplier, store, item)

    submit_purchase_order(db_session, po.id)
    assert po.status == POStatus.pending_approval
    assert list_pending_approvals(db_session) == [po]

    approve_purchase_order(db_session, po.id, manager.id)
    assert po.status == POStatus.approved
    assert po.approved_by == manager.id
    assert po.approved_at is not None

    send_purchase_order(db_session, po.id)
    assert po.status == POStatus.sent

    eta = today() + timedelta(days=3)
    confirm_purchase_order(db_session, po.id, admin.id, expected_delivery_date=eta, supplier_notes="OK")
    assert po.status == POStatus.confirmed
    assert po.confirmed_by == admin.id
    assert po.expected_delivery_date == eta
    assert po.supplier_notes == "OK"


def test_approve_requires_pending_approval(db_session, supplier, store, item):
    po = _po(db_session, supplier, store, item)

    with pytest.raises(InvalidTransitionError) as exc:
        approve_purchase_order(db_session, po.id, None)

    assert str(exc.value) == "Cannot approve PO in status draft"
    assert po.status == POStatus.draft


def test_reject_uses_default_reason(db_session, supplier, store, item, users):
    po = _po(db_session, supplier, store, item, status=POStatus.pending_approval)

    reject_purchase_order(db_session, po.id, users[RoleCode.store_manager].id, "  ")

    assert po.status == POStatus.cancelled
    assert po.rejection_reason == "Rejected by manager"


def test_receive_sent_po(db_session, supplier, store, item, users):
    po = _po(db_session, supplier, store, item, status=POStatus.pending_approval)
    approve_purchase_order(db_session, po.id, None)
    send_purchase_order(db_session, po.id)

    receive_purchase_order(db_session, po.id, users[RoleCode.inventory_staff].id)

    assert po.status == POStatus.confirmed
    assert po.actual_delivery_date is not None


def test_reject_receipt_requires_reason(db_session, supplier, store, item):
    po = _po(db_session, supplier, store, item, status=POStatus.pending_approval)
    approve_purchase_order(db_session, po.id, None)
    send_purchase_order(db_session, po.id)

    with pytest.raises(ServiceError, match="reason"):
        reject_receipt(db_session, po.id, None, "")

    reject_receipt(db_session, po.id, None, "Broken cold chain")
    assert po.status == POStatus.cancelled
    assert po.rejection_reason == "Broken cold chain"


def test_update_only_while_editable(db_session, supplier, store, item):
    po = _po(db_session, supplier, store, item)
    update_purchase_order(db_session, po.id, notes="urgent")
    assert po.notes == "urgent"

    submit_purchase_order(db_session, po.id)
    approve_purchase_order(db_session, po.id, None)

    with pytest.raises(InvalidTransitionError):
        update_purchase_order(db_session, po.id, notes="too late")


def test_delete_is_soft_and_limited(db_session, supplier, store, item):
    draft = _po(db_session, supplier, store, item)
    delete_purchase_order(db_session, draft.id)

    assert draft.deleted_at is not None
    with pytest.raises(NotFoundError):
        get_purchase_order(db_session, draft.id)

    approved = _po(db_session, supplier, store, item, status=POStatus.pending_approval)
    approve_purchase_order(db_session, approved.id, None)
    with pytest.raises(InvalidTransitionError):
        delete_purchase_order(db_session, approved.id)


def test_create_po_refuses_advanced_status(db_session, supplier, store, item):
    with pytest.raises(ServiceError):
        _po(db_session, supplier, store, item, status=POStatus.approved)
