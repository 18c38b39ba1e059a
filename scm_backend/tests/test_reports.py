from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from scm_backend.app.core.time_utils import today, utcnow
from scm_backend.app.db.models.core_types import BatchStatus, POStatus, RoleCode
from scm_backend.app.db.models.models_v1 import InventoryBatch
from scm_backend.services.notifications import notifications_for
from scm_backend.services.procurement import POLine, create_purchase_order
from scm_backend.services.replenishment import create_stock_request
from scm_backend.services.reports import (
    dashboard,
    expired_items_report,
    expiry_status,
    gross_profit_report,
    inventory_value,
    items_below_safety_stock,
    low_stock_alerts,
)
from scm_backend.services.sales import create_sale


@pytest.mark.parametrize("days, expected", [(-1, "expired"), (0, "expires_today"), (5, "near_expiry")])
def test_expiry_status(days, expected):
    assert expiry_status(days) == expected


def test_expired_items_report(db_session, store, make_item, make_batch):
    item = make_item()
    # lot déjà périmé : create_batch refuse une date passée
    db_session.add(
        InventoryBatch(
            item_id=item.id,
            store_id=store.id,
            batch_no="OLD",
            expiry_date=today() - timedelta(days=2),
            quantity_on_hand=3,
            status=BatchStatus.low_stock,
        )
    )
    soon = make_batch(item, store, 10, days_to_expiry=3)
    make_batch(item, store, 10, days_to_expiry=30)
    db_session.flush()

    rows = expired_items_report(db_session, 7)

    assert [r["batch_no"] for r in rows] == ["OLD", soon.batch_no]
    assert rows[0]["days_until_expiry"] == -2
    assert rows[0]["status"] == "expired"
    assert rows[1]["status"] == "near_expiry"


def test_inventory_value_ignores_batches_without_cost(db_session, store, make_item, make_batch):
    item = make_item()
    make_batch(item, store, 10, unit_cost="2.50")
    make_batch(item, store, 4, unit_cost="10.00")
    make_batch(item, store, 100)

    assert inventory_value(db_session) == Decimal("65.00")


def test_items_below_safety_stock_sorted_by_gap(db_session, store, make_item, make_batch):
    small_gap = make_item(min_stock_level=10)
    big_gap = make_item(min_stock_level=50)
    fine = make_item(min_stock_level=5)
    make_batch(small_gap, store, 8)
    make_batch(fine, store, 20)

    rows = items_below_safety_stock(db_session)

    assert [r["item_id"] for r in rows] == [big_gap.id, small_gap.id]
    assert rows[0]["difference"] == 50
    assert rows[1]["difference"] == 2


def test_gross_profit_report(db_session, store, make_item, make_batch):
    a, b = make_item(), make_item()
    make_batch(a, store, 100, unit_cost="4.00")
    make_batch(b, store, 100, unit_cost="1.00")
    d1 = datetime.combine(today(), datetime.min.time()) - timedelta(days=1)
    create_sale(db_session, store_id=store.id, item_id=a.id, quantity=10, unit_price=Decimal("6"), sale_date=d1)
    create_sale(db_session, store_id=store.id, item_id=b.id, quantity=5, unit_price=Decimal("3"), sale_date=d1)

    report = gross_profit_report(db_session, store_id=store.id)

    summary = report["summary"]
    assert summary["total_transactions"] == 2
    assert summary["total_revenue"] == 75.0
    assert summary["total_cost"] == 45.0
    assert summary["total_gross_profit"] == 30.0
    assert summary["gross_profit_margin"] == 40.0

    assert [r["item_id"] for r in report["by_item"]] == [a.id, b.id]
    assert report["by_item"][0]["gross_profit"] == 20.0
    (day,) = report["by_date"]
    assert day["date"] == d1.date().isoformat()
    assert day["quantity"] == 15


def test_dashboard_counts(db_session, store, make_item, make_batch, make_supplier):
    item = make_item()
    make_batch(item, store, 3, unit_cost="1.00")
    create_purchase_order(
        db_session,
        supplier_id=make_supplier().id,
        store_id=store.id,
        lines=[POLine(item_id=item.id, quantity=1, unit_price=Decimal("1"), unit="box")],
        status=POStatus.pending_approval,
    )
    create_sale(db_session, store_id=store.id, item_id=item.id, quantity=3, unit_price=Decimal("2"))

    data = dashboard(db_session)

    assert data["pending_po_approvals"] == 1
    # lot vidé par la vente
    assert data["low_stock_items"] == 1
    assert data["stock_out_risk"] == 1
    assert data["gross_profit"]["total_revenue"] == 6.0
    assert data["gross_profit"]["gross_profit"] == 3.0
    assert data["items_below_safety_stock_count"] == 1


def test_low_stock_alerts(db_session, store, make_item, make_batch):
    item = make_item(min_stock_level=20)
    low = make_batch(item, store, 5)
    make_batch(item, store, 40)

    rows = low_stock_alerts(db_session)

    assert [r["batch_no"] for r in rows] == [low.batch_no]
    assert rows[0]["min_stock_level"] == 20


# ---------- NOTIFICATIONS ----------
def test_notifications_by_role(db_session, store, make_item, make_batch, make_supplier):
    """
    GIVEN
    - un PO en attente, une demande ouverte, un lot en rupture

    THEN
    - le manager voit l'approbation, pas les demandes
    - l'acheteur voit les demandes, pas l'approbation
    - priorité haute en premier
    """
    item = make_item()
    empty = make_batch(item, store, 1)
    empty.quantity_on_hand = 0
    empty.status = BatchStatus.out_of_stock
    create_purchase_order(
        db_session,
        supplier_id=make_supplier().id,
        store_id=store.id,
        lines=[POLine(item_id=item.id, quantity=1, unit_price=Decimal("1"), unit="box")],
        status=POStatus.pending_approval,
    )
    create_stock_request(db_session, store_id=store.id, item_id=item.id, requested_qty=5)
    db_session.flush()

    manager = [n["type"] for n in notifications_for(db_session, RoleCode.store_manager.value)]
    buyer = [n["type"] for n in notifications_for(db_session, RoleCode.procurement_staff.value)]
    admin = [n["type"] for n in notifications_for(db_session, RoleCode.admin.value)]

    assert set(manager) == {"po_approval", "out_of_stock"}
    assert set(buyer) == {"out_of_stock", "stock_request"}
    assert buyer == ["out_of_stock", "stock_request"]
    assert set(admin) == {"po_approval", "out_of_stock", "stock_request"}


def test_expiry_warning_after_80_percent_of_shelf_life(db_session, store, make_item, make_batch):
    item = make_item()
    batch = make_batch(item, store, 50, days_to_expiry=10)
    # entré en stock il y a 90 jours
    batch.created_at = utcnow() - timedelta(days=90)
    db_session.flush()

    types = [n["type"] for n in notifications_for(db_session, RoleCode.inventory_staff.value)]

    assert types == ["expiry_warning"]
