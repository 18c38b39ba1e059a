from decimal import Decimal

import pytest

from scm_backend.app.db.models.core_types import BatchStatus, ReferenceType, TransactionType
from scm_backend.services.errors import NotFoundError, ServiceError
from scm_backend.services.inventory import list_transactions
from scm_backend.services.sales import consumable_batches, create_sale


def test_sale_consumes_batches_fifo(db_session, store, make_item, make_batch):
    """
    GIVEN
    - lot A : 5 u. à 10, péremption J+10
    - lot B : 10 u. à 20, péremption J+20

    THEN
    - vente de 8 : A vidé, 3 pris sur B
    - coût = 5*10 + 3*20 = 110
    """
    # ---------- ARRANGE ----------
    item = make_item()
    late = make_batch(item, store, 10, days_to_expiry=20, unit_cost="20.00")
    early = make_batch(item, store, 5, days_to_expiry=10, unit_cost="10.00")

    # ---------- ACT ----------
    sale = create_sale(db_session, store_id=store.id, item_id=item.id, quantity=8, unit_price=Decimal("50"))

    # ---------- ASSERT ----------
    assert early.quantity_on_hand == 0
    assert early.status == BatchStatus.out_of_stock
    assert late.quantity_on_hand == 7
    assert late.status == BatchStatus.low_stock

    assert sale.total_amount == Decimal("400.00")
    assert sale.total_cost == Decimal("110.00")
    assert sale.cost_price == Decimal("13.75")
    assert sale.gross_profit == Decimal("290.00")

    db_session.flush()
    txs = list_transactions(db_session, transaction_type=TransactionType.issue)
    assert sorted((t.batch_id, t.quantity) for t in txs) == sorted([(early.id, -5), (late.id, -3)])
    assert all(t.reference_type == ReferenceType.sales and t.reference_id == sale.id for t in txs)


def test_sale_insufficient_stock_changes_nothing(db_session, store, make_item, make_batch):
    item = make_item()
    batch = make_batch(item, store, 4, unit_cost="1.00")

    with pytest.raises(ServiceError, match="Insufficient stock"):
        create_sale(db_session, store_id=store.id, item_id=item.id, quantity=5, unit_price=Decimal("2"))

    assert batch.quantity_on_hand == 4
    assert list_transactions(db_session) == []


def test_sale_skips_expired_batches(db_session, store, make_item, make_batch):
    item = make_item()
    expired = make_batch(item, store, 50, days_to_expiry=1)
    expired.status = BatchStatus.expired
    fresh = make_batch(item, store, 20, days_to_expiry=60)
    db_session.flush()

    assert [b.id for b in consumable_batches(db_session, item.id, store.id)] == [fresh.id]

    create_sale(db_session, store_id=store.id, item_id=item.id, quantity=5, unit_price=Decimal("3"))
    assert expired.quantity_on_hand == 50
    assert fresh.quantity_on_hand == 15


def test_sale_with_idempotency_key_is_recorded_once(db_session, store, make_item, make_batch):
    item = make_item()
    batch = make_batch(item, store, 30, unit_cost="2.00")

    first = create_sale(
        db_session, store_id=store.id, item_id=item.id, quantity=3, unit_price=Decimal("5"), idempotency_key="k-1"
    )
    again = create_sale(
        db_session, store_id=store.id, item_id=item.id, quantity=3, unit_price=Decimal("5"), idempotency_key="k-1"
    )

    assert again.id == first.id
    assert batch.quantity_on_hand == 27


def test_sale_without_cost_has_zero_cost(db_session, store, make_item, make_batch):
    item = make_item()
    make_batch(item, store, 10)

    sale = create_sale(db_session, store_id=store.id, item_id=item.id, quantity=2, unit_price=Decimal("7.5"))

    assert sale.total_cost == Decimal("0.00")
    assert sale.gross_profit == Decimal("15.00")


@pytest.mark.parametrize("quantity, price", [(0, "1"), (-2, "1"), (1, "-1")])
def test_sale_rejects_invalid_input(db_session, store, make_item, quantity, price):
    item = make_item()
    with pytest.raises(ServiceError):
        create_sale(db_session, store_id=store.id, item_id=item.id, quantity=quantity, unit_price=Decimal(price))


def test_sale_unknown_item(db_session, store):
    with pytest.raises(NotFoundError):
        create_sale(db_session, store_id=store.id, item_id=404, quantity=1, unit_price=Decimal("1"))
