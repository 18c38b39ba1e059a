"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Les Enum SQLAlchemy stockent le NOM du membre
storage_type = sa.Enum("cold", "frozen", name="storage_type")
po_status = sa.Enum(
    "draft", "pending_approval", "approved", "sent", "confirmed", "delivered", "cancelled",
    name="po_status",
)
stock_request_status = sa.Enum("requested", "po_generated", "cancelled", name="stock_request_status")
stock_request_priority = sa.Enum("low", "medium", "high", name="stock_request_priority")
batch_status = sa.Enum("in_stock", "low_stock", "out_of_stock", "expired", name="batch_status")
transaction_type = sa.Enum("receipt", "issue", "adjustment", name="transaction_type")
reference_type = sa.Enum("po", "grn", "adjustment", "sales", name="reference_type")


def _timestamps(updated: bool = True, deleted: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False))
    if deleted:
        cols.append(sa.Column("deleted_at", sa.DateTime(), nullable=True))
    return cols


def upgrade() -> None:
    op.create_table(
        "roles",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "stores",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200)),
        sa.Column("role_id", sa.BigInteger(), sa.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="SET NULL")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("token_hash", sa.String(64), unique=True),
        sa.Column("token_expires_at", sa.DateTime()),
        *_timestamps(),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("category", sa.String(100)),
        sa.Column("unit", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("min_stock_level", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("max_stock_level", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("safety_stock", sa.Numeric(10, 2)),
        sa.Column("lead_time_days", sa.Integer()),
        sa.Column("storage_type", storage_type, nullable=False, server_default="cold"),
        sa.Column("min_temperature", sa.Float()),
        sa.Column("max_temperature", sa.Float()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("min_stock_level >= 0", name="ck_item_min_stock_nonneg"),
        sa.CheckConstraint("max_stock_level >= min_stock_level", name="ck_item_max_ge_min"),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_person", sa.String(200)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("lead_time_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reliability_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "reliability_score >= 0 AND reliability_score <= 100", name="ck_supplier_reliability_0_100"
        ),
        sa.CheckConstraint("lead_time_days >= 0", name="ck_supplier_lead_time_nonneg"),
    )

    op.create_table(
        "supplier_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="VND"),
        sa.Column("min_order_qty", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("lead_time_days", sa.Integer()),
        sa.Column("is_preferred", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("effective_from", sa.Date()),
        sa.Column("effective_to", sa.Date()),
        *_timestamps(deleted=False),
        sa.UniqueConstraint("supplier_id", "item_id", name="uq_supplier_item"),
        sa.CheckConstraint("unit_price >= 0", name="ck_supplier_item_price_nonneg"),
        sa.CheckConstraint("min_order_qty >= 1", name="ck_supplier_item_moq_pos"),
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("po_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("expected_delivery_date", sa.Date()),
        sa.Column("status", po_status, nullable=False, server_default="draft"),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("approved_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("confirmed_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("confirmed_at", sa.DateTime()),
        sa.Column("actual_delivery_date", sa.DateTime()),
        sa.Column("supplier_notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="ck_po_total_nonneg"),
    )
    op.create_index("ix_purchase_orders_status_created", "purchase_orders", ["status", "created_at"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("po_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_item_unit_price_nonneg"),
    )

    op.create_table(
        "stock_requests",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("requested_qty", sa.Integer(), nullable=False),
        sa.Column("status", stock_request_status, nullable=False, server_default="requested"),
        sa.Column("priority", stock_request_priority, nullable=False, server_default="medium"),
        sa.Column("requested_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("po_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        *_timestamps(deleted=False),
        sa.CheckConstraint("requested_qty > 0", name="ck_stock_request_qty_pos"),
    )
    op.create_index("ix_stock_requests_status_store", "stock_requests", ["status", "store_id"])

    op.create_table(
        "goods_receipts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("grn_number", sa.String(128), nullable=False, unique=True),
        sa.Column("po_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("received_date", sa.Date(), nullable=False),
        sa.Column("received_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime()),
    )

    op.create_table(
        "goods_receipt_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("grn_id", sa.BigInteger(), sa.ForeignKey("goods_receipts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_no", sa.String(64), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("received_qty", sa.Integer(), nullable=False),
        sa.CheckConstraint("received_qty > 0", name="ck_grn_item_qty_pos"),
    )

    op.create_table(
        "inventory_batches",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_no", sa.String(64), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("temperature", sa.Float()),
        sa.Column("unit_cost", sa.Numeric(15, 2)),
        sa.Column("status", batch_status, nullable=False, server_default="in_stock"),
        *_timestamps(),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_batch_qty_nonneg"),
    )
    op.create_index(
        "uq_batch_store_batch_no",
        "inventory_batches",
        ["store_id", "batch_no"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index(
        "ix_inventory_batches_store_item_expiry",
        "inventory_batches",
        ["store_id", "item_id", "expiry_date"],
    )

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("inventory_batches.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("transaction_type", transaction_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reference_type", reference_type),
        sa.Column("reference_id", sa.BigInteger()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity <> 0", name="ck_inventory_tx_qty_nonzero"),
    )
    op.create_index("ix_inventory_tx_item_time", "inventory_transactions", ["item_id", "created_at"])

    op.create_table(
        "temperature_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("inventory_batches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("temperature", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("is_alert", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_temperature_logs_batch_time", "temperature_logs", ["batch_id", "recorded_at"])

    op.create_table(
        "sales_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("cost_price", sa.Numeric(15, 2)),
        sa.Column("total_cost", sa.Numeric(15, 2)),
        sa.Column("gross_profit", sa.Numeric(15, 2)),
        sa.Column("sale_date", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_qty_pos"),
    )
    op.create_index("ix_sales_store_date", "sales_transactions", ["store_id", "sale_date"])


def downgrade() -> None:
    op.drop_index("ix_sales_store_date", table_name="sales_transactions")
    op.drop_table("sales_transactions")
    op.drop_index("ix_temperature_logs_batch_time", table_name="temperature_logs")
    op.drop_table("temperature_logs")
    op.drop_index("ix_inventory_tx_item_time", table_name="inventory_transactions")
    op.drop_table("inventory_transactions")
    op.drop_index("ix_inventory_batches_store_item_expiry", table_name="inventory_batches")
    op.drop_index("uq_batch_store_batch_no", table_name="inventory_batches")
    op.drop_table("inventory_batches")
    op.drop_table("goods_receipt_items")
    op.drop_table("goods_receipts")
    op.drop_index("ix_stock_requests_status_store", table_name="stock_requests")
    op.drop_table("stock_requests")
    op.drop_table("purchase_order_items")
    op.drop_index("ix_purchase_orders_status_created", table_name="purchase_orders")
    op.drop_table("purchase_orders")
    op.drop_table("supplier_items")
    op.drop_table("suppliers")
    op.drop_table("items")
    op.drop_table("users")
    op.drop_table("stores")
    op.drop_table("roles")

    bind = op.get_bind()
    for enum in (
        reference_type,
        transaction_type,
        batch_status,
        stock_request_priority,
        stock_request_status,
        po_status,
        storage_type,
    ):
        enum.drop(bind, checkfirst=True)
