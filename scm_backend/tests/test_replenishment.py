from datetime import timedelta
from decimal import Decimal

import pytest

from scm_backend.app.core.time_utils import today, utcnow
from scm_backend.app.db.models.core_types import (
    POStatus,
    RoleCode,
    StockRequestPriority,
    StockRequestStatus,
)
from scm_backend.app.db.models.models_v1 import SalesTransaction, Store
from scm_backend.services.errors import InvalidTransitionError, ServiceError
from scm_backend.services.inventory import calculate_safety_stock
from scm_backend.services.procurement import (
    find_best_mapping_for_item,
    get_purchase_order,
    round_to_moq,
)
from scm_backend.services.replenishment import (
    auto_generate_po,
    auto_replenish_below_safety_stock,
    cancel_requests,
    create_stock_request,
    express_order,
    generate_po_from_requests,
    get_stock_request,
    list_stock_requests,
    update_stock_request,
)


@pytest.mark.parametrize(
    "quantity, moq, expected",
    [
        (1, 10, 10),
        (10, 10, 10),
        (11, 10, 20),
        (25, None, 25),
        (7, 0, 7),
    ],
)
def test_round_to_moq(quantity, moq, expected):
    assert round_to_moq(quantity, moq) == expected


# ---------- MAPPING ----------
def test_preferred_mapping_wins_over_cheaper(make_item, make_supplier, make_mapping, db_session):
    item = make_item()
    cheap = make_supplier()
    preferred = make_supplier()
    make_mapping(cheap, item, "5.00")
    m_pref = make_mapping(preferred, item, "9.00", is_preferred=True)

    assert find_best_mapping_for_item(db_session, item.id).id == m_pref.id


def test_cheapest_mapping_without_preferred(make_item, make_supplier, make_mapping, db_session):
    item = make_item()
    make_mapping(make_supplier(), item, "12.00")
    cheapest = make_mapping(make_supplier(), item, "8.50")
    make_mapping(make_supplier(), item, "1.00", is_active=False)

    assert find_best_mapping_for_item(db_session, item.id).id == cheapest.id


def test_mapping_outside_validity_window_is_ignored(make_item, make_supplier, make_mapping, db_session):
    """
    GIVEN
    - un mapping préféré expiré hier
    - un mapping valide plus cher

    THEN
    - le mapping valide est retenu
    """
    item = make_item()
    make_mapping(make_supplier(), item, "3.00", is_preferred=True, effective_to=today() - timedelta(days=1))
    valid = make_mapping(make_supplier(), item, "7.00", effective_from=today() - timedelta(days=10))

    assert find_best_mapping_for_item(db_session, item.id).id == valid.id


def test_mapping_of_deleted_supplier_is_ignored(make_item, make_supplier, make_mapping, db_session):
    item = make_item()
    gone = make_supplier()
    make_mapping(gone, item, "1.00", is_preferred=True)
    gone.deleted_at = utcnow()
    db_session.flush()

    assert find_best_mapping_for_item(db_session, item.id) is None


# ---------- REQUESTS -> PO ----------
def test_generate_po_groups_by_store_and_supplier(
    db_session, store, make_item, make_supplier, make_mapping
):
    """
    GIVEN
    - articles A et B chez le fournisseur S1 (MOQ 12), C chez S2
    - une demande par article

    THEN
    - 2 PO en pending_approval
    - quantités arrondies au MOQ
    - les demandes passent en po_generated avec leur po_id
    """
    # ---------- ARRANGE ----------
    s1 = make_supplier(lead_time_days=4)
    s2 = make_supplier()
    a, b, c = make_item(), make_item(), make_item()
    make_mapping(s1, a, "10.00", min_order_qty=12)
    make_mapping(s1, b, "2.50", min_order_qty=12, lead_time_days=7)
    make_mapping(s2, c, "100.00")

    reqs = [
        create_stock_request(db_session, store_id=store.id, item_id=a.id, requested_qty=5),
        create_stock_request(db_session, store_id=store.id, item_id=b.id, requested_qty=13),
        create_stock_request(db_session, store_id=store.id, item_id=c.id, requested_qty=3),
    ]

    # ---------- ACT ----------
    results = generate_po_from_requests(db_session, [r.id for r in reqs])

    # ---------- ASSERT ----------
    assert len(results) == 2
    by_ids = {tuple(r["request_ids"]): r for r in results}
    po_s1 = reqs[0].po_id
    assert by_ids[(reqs[0].id, reqs[1].id)]["po_id"] == po_s1
    assert by_ids[(reqs[2].id,)]["po_id"] == reqs[2].po_id

    po = get_purchase_order(db_session, po_s1)
    assert po.status == POStatus.pending_approval
    assert po.supplier_id == s1.id
    assert {ln.item_id: ln.quantity for ln in po.items} == {a.id: 12, b.id: 24}
    assert po.total_amount == Decimal("180.00")
    # délai le plus long du groupe
    assert po.expected_delivery_date == today() + timedelta(days=7)

    for r in reqs:
        assert r.status == StockRequestStatus.po_generated
        assert r.po_id is not None


def test_generate_po_without_any_mapping_fails(db_session, store, make_item):
    item = make_item()
    req = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)

    with pytest.raises(ServiceError):
        generate_po_from_requests(db_session, [req.id])

    assert req.status == StockRequestStatus.requested


def test_generate_po_ignores_closed_requests(db_session, store, make_item):
    item = make_item()
    req = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)
    req.status = StockRequestStatus.cancelled
    db_session.flush()

    with pytest.raises(ServiceError, match="No open stock requests"):
        generate_po_from_requests(db_session, [req.id])


def test_auto_generate_po_cancels_unmapped_requests(
    db_session, store, make_item, make_supplier, make_mapping
):
    mapped, orphan = make_item(), make_item()
    make_mapping(make_supplier(), mapped, "4.00")
    r_ok = create_stock_request(db_session, store_id=store.id, item_id=mapped.id, requested_qty=8)
    r_ko = create_stock_request(db_session, store_id=store.id, item_id=orphan.id, requested_qty=8)

    results = auto_generate_po(db_session)

    assert len(results) == 1
    assert results[0]["request_ids"] == [r_ok.id]
    assert r_ok.status == StockRequestStatus.po_generated
    assert r_ko.status == StockRequestStatus.cancelled


# ---------- STOCK REQUESTS ----------
def test_update_stock_request_status_rules(db_session, store, make_item):
    """
    GIVEN
    - deux demandes 'requested'

    THEN
    - requested -> cancelled et requested -> po_generated acceptés
    - une demande fermée ne change plus de statut
    - requested -> requested (même statut) ne fait rien
    """
    item = make_item()
    a = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)
    b = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)

    update_stock_request(db_session, a.id, status=StockRequestStatus.requested, notes="rappel")
    assert a.status == StockRequestStatus.requested
    assert a.notes == "rappel"

    update_stock_request(db_session, a.id, status=StockRequestStatus.cancelled)
    update_stock_request(db_session, b.id, status=StockRequestStatus.po_generated)
    assert a.status == StockRequestStatus.cancelled
    assert b.status == StockRequestStatus.po_generated

    with pytest.raises(InvalidTransitionError, match="in status cancelled"):
        update_stock_request(db_session, a.id, status=StockRequestStatus.requested)
    with pytest.raises(InvalidTransitionError, match="in status po_generated"):
        update_stock_request(db_session, b.id, status=StockRequestStatus.cancelled)


def test_cancel_requests_only_touches_open_ones(db_session, store, make_item):
    item = make_item()
    open_1 = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)
    open_2 = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=7)
    done = create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=9)
    done.status = StockRequestStatus.po_generated
    db_session.flush()

    result = cancel_requests(db_session, [open_2.id, done.id, open_1.id, 9999])

    assert result == {"cancelled": 2, "request_ids": sorted([open_1.id, open_2.id])}
    assert open_1.status == StockRequestStatus.cancelled
    assert done.status == StockRequestStatus.po_generated
    assert cancel_requests(db_session, []) == {"cancelled": 0, "request_ids": []}


# ---------- SAFETY STOCK ----------
def _sale(db_session, store, item, quantity, days_ago=1):
    db_session.add(
        SalesTransaction(
            store_id=store.id,
            item_id=item.id,
            quantity=quantity,
            unit_price=Decimal("1.00"),
            total_amount=Decimal(quantity),
            sale_date=utcnow() - timedelta(days=days_ago),
        )
    )
    db_session.flush()


def test_safety_stock_manual_value_has_priority(db_session, make_item):
    item = make_item(safety_stock=Decimal("12.30"))
    assert calculate_safety_stock(db_session, item.id) == 13


def test_safety_stock_without_sales_is_min_level(db_session, make_item):
    item = make_item(min_stock_level=15)
    assert calculate_safety_stock(db_session, item.id) == 15


def test_safety_stock_from_recent_sales(db_session, store, make_item):
    """300 ventes / 30 j * 4 j de délai * 1.5 = 60"""
    item = make_item(lead_time_days=4)
    _sale(db_session, store, item, 200, days_ago=2)
    _sale(db_session, store, item, 100, days_ago=20)
    # hors fenêtre : ignorée
    _sale(db_session, store, item, 900, days_ago=45)

    assert calculate_safety_stock(db_session, item.id, store.id) == 60


def test_safety_stock_never_below_min_level(db_session, store, make_item):
    item = make_item(min_stock_level=10)
    _sale(db_session, store, item, 30)

    # 30 / 30 * 3 (délai par défaut) * 1.5 = 4.5 -> 5, plancher 10
    assert calculate_safety_stock(db_session, item.id, store.id) == 10


# ---------- AUTO-REPLENISH ----------
def test_auto_replenish_creates_requests_and_pos(
    db_session, store, make_item, make_supplier, make_mapping, make_batch
):
    """
    GIVEN
    - article sous le stock de sécurité (0 < 10), mapping MOQ 25
    - article au-dessus du stock de sécurité

    THEN
    - une seule demande (10 + 20 = 30), PO à 50 (MOQ)
    """
    # ---------- ARRANGE ----------
    supplier = make_supplier()
    low, ok = make_item(), make_item()
    make_mapping(supplier, low, "3.00", min_order_qty=25)
    make_mapping(supplier, ok, "3.00")
    make_batch(ok, store, 50)

    # ---------- ACT ----------
    results = auto_replenish_below_safety_stock(db_session)

    # ---------- ASSERT ----------
    assert len(results) == 1
    res = results[0]
    assert res["item_id"] == low.id
    assert res["store_id"] == store.id
    assert res["po_id"] is not None

    req = get_stock_request(db_session, res["stock_request_id"])
    assert req.requested_qty == 30
    assert req.status == StockRequestStatus.po_generated
    assert "Below safety stock" in req.notes

    po = get_purchase_order(db_session, res["po_id"])
    assert po.status == POStatus.pending_approval
    assert [ln.quantity for ln in po.items] == [50]


def test_auto_replenish_skips_item_already_requested(db_session, store, make_item):
    item = make_item()
    create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)

    assert auto_replenish_below_safety_stock(db_session) == []


def test_auto_replenish_scoped_to_store(db_session, store, make_item, make_supplier, make_mapping):
    other = Store(code="HN-01", name="Ha Noi", is_active=True)
    db_session.add(other)
    db_session.flush()
    item = make_item()
    make_mapping(make_supplier(), item, "3.00")

    results = auto_replenish_below_safety_stock(db_session, other.id)

    assert [r["store_id"] for r in results] == [other.id]


# ---------- EXPRESS ----------
def test_express_order_is_approved_and_sent(
    db_session, store, users, make_item, make_supplier, make_mapping
):
    item = make_item()
    make_mapping(make_supplier(), item, "20.00", min_order_qty=6)
    manager = users[RoleCode.store_manager]

    po = express_order(db_session, item_id=item.id, store_id=store.id, quantity=4, requested_by=manager.id)

    assert po.status == POStatus.sent
    assert po.approved_by == manager.id
    assert po.approved_at is not None
    assert [ln.quantity for ln in po.items] == [6]

    (req,) = list_stock_requests(db_session)
    assert req.priority == StockRequestPriority.high
    assert req.status == StockRequestStatus.po_generated
    assert req.po_id == po.id


def test_express_order_without_mapping_fails(db_session, store, make_item):
    item = make_item()
    with pytest.raises(ServiceError):
        express_order(db_session, item_id=item.id, store_id=store.id, quantity=4)
