from datetime import timedelta
from decimal import Decimal

import pytest

from scm_backend.app.core.time_utils import today
from scm_backend.app.db.models.core_types import POStatus, ReferenceType, TransactionType
from scm_backend.services.errors import InvalidTransitionError, ServiceError
from scm_backend.services.inventory import delete_batch, find_batch, list_transactions
from scm_backend.services.procurement import (
    POLine,
    approve_purchase_order,
    create_purchase_order,
    send_purchase_order,
)
from scm_backend.services.receiving import (
    ReceiptLine,
    create_goods_receipt,
    weighted_average_cost,
)


def test_weighted_average_cost():
    # (10*10 + 20*30) / 40
    assert weighted_average_cost(Decimal("10"), 10, Decimal("20"), 30) == Decimal("17.50")
    assert weighted_average_cost(None, 0, Decimal("4.2"), 5) == Decimal("4.20")


@pytest.fixture
def sent_po(db_session, store, make_item, make_supplier):
    item = make_item()
    po = create_purchase_order(
        db_session,
        supplier_id=make_supplier().id,
        store_id=store.id,
        lines=[POLine(item_id=item.id, quantity=30, unit_price=Decimal("20.00"), unit="box")],
        status=POStatus.pending_approval,
    )
    approve_purchase_order(db_session, po.id, None)
    send_purchase_order(db_session, po.id)
    return po


def _line(item_id, qty=30, batch_no="LOT-1"):
    return ReceiptLine(
        item_id=item_id,
        batch_no=batch_no,
        expiry_date=today() + timedelta(days=90),
        received_qty=qty,
        temperature=4.0,
    )


def test_receipt_creates_batch_and_delivers_po(db_session, store, sent_po):
    item_id = sent_po.items[0].item_id

    grn = create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(item_id)])

    assert grn.grn_number.startswith("GRN-")
    assert grn.grn_number.endswith(sent_po.po_number)
    assert sent_po.status == POStatus.delivered
    assert sent_po.actual_delivery_date is not None

    batch = find_batch(db_session, store_id=store.id, batch_no="LOT-1")
    assert batch.quantity_on_hand == 30
    assert batch.unit_cost == Decimal("20.00")
    assert batch.temperature == 4.0

    (tx,) = list_transactions(db_session, transaction_type=TransactionType.receipt)
    assert tx.quantity == 30
    assert tx.reference_type == ReferenceType.grn
    assert tx.reference_id == grn.id


def test_receipt_merges_into_existing_batch(db_session, store, sent_po, make_batch):
    """
    GIVEN
    - lot LOT-1 existant : 10 u. à 10
    - réception de 30 u. au prix PO de 20

    THEN
    - 40 u., coût moyen pondéré 17.50
    """
    item = sent_po.items[0].item
    existing = make_batch(item, store, 10, unit_cost="10.00", batch_no="LOT-1")

    create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(item.id)])

    assert existing.quantity_on_hand == 40
    assert existing.unit_cost == Decimal("17.50")


def test_receipt_reuses_number_of_deleted_batch(db_session, store, sent_po, make_batch):
    item = sent_po.items[0].item
    old = make_batch(item, store, 10, unit_cost="10.00", batch_no="LOT-1")
    delete_batch(db_session, old.id)

    create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(item.id)])

    # nouveau lot au prix PO, l'ancien n'entre pas dans la moyenne
    batch = find_batch(db_session, store_id=store.id, batch_no="LOT-1")
    assert batch.id != old.id
    assert batch.quantity_on_hand == 30
    assert batch.unit_cost == Decimal("20.00")
    assert old.quantity_on_hand == 10


def test_receipt_refuses_batch_of_another_item(db_session, store, sent_po, make_item, make_batch):
    make_batch(make_item(), store, 10, batch_no="LOT-1")

    with pytest.raises(ServiceError, match="another item"):
        create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(sent_po.items[0].item_id)])


def test_receipt_requires_sent_or_confirmed_po(db_session, store, make_item, make_supplier):
    item = make_item()
    draft = create_purchase_order(
        db_session,
        supplier_id=make_supplier().id,
        store_id=store.id,
        lines=[POLine(item_id=item.id, quantity=1, unit_price=Decimal("1"), unit="box")],
    )

    with pytest.raises(InvalidTransitionError):
        create_goods_receipt(db_session, po_id=draft.id, lines=[_line(item.id)])


def test_receipt_with_only_foreign_items_fails(db_session, sent_po, make_item):
    stranger = make_item()

    with pytest.raises(ServiceError, match="None of the received items"):
        create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(stranger.id)])


def test_receipt_skips_foreign_lines(db_session, store, sent_po, make_item):
    stranger = make_item()
    item_id = sent_po.items[0].item_id

    grn = create_goods_receipt(
        db_session,
        po_id=sent_po.id,
        lines=[_line(stranger.id, batch_no="LOT-X"), _line(item_id)],
    )

    assert [gi.item_id for gi in grn.items] == [item_id]
    assert find_batch(db_session, store_id=store.id, batch_no="LOT-X") is None


def test_receipt_idempotency_key(db_session, sent_po):
    item_id = sent_po.items[0].item_id

    first = create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(item_id)], idempotency_key="abc")
    # PO déjà delivered : sans la clé, ce second appel échouerait
    again = create_goods_receipt(db_session, po_id=sent_po.id, lines=[_line(item_id)], idempotency_key="abc")

    assert again.id == first.id
