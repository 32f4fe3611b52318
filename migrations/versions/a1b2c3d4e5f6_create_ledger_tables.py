"""create ledger tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


currency = postgresql.ENUM("USD", "UZS", name="currency", create_type=False)
payment_type = postgresql.ENUM("cash", "card", "debt", name="paymenttype", create_type=False)
order_status = postgresql.ENUM("pending", "completed", "cancelled", name="orderstatus", create_type=False)
debtor_status = postgresql.ENUM("pending", "partial", "paid", "overdue", name="debtorstatus", create_type=False)
transaction_type = postgresql.ENUM(
    "cash-in", "cash-out", "order", "service", "debt-payment", "debt-created",
    name="transactiontype", create_type=False,
)
related_model = postgresql.ENUM("Order", "Service", "Debtor", name="relatedmodel", create_type=False)

ENUMS = (currency, payment_type, order_status, debtor_status, transaction_type, related_model)


def base_fields():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    ]


def money(prefix):
    return [
        sa.Column(f"{prefix}_usd", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column(f"{prefix}_uzs", sa.Numeric(18, 2), nullable=False, server_default="0"),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "branches",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        *base_fields(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("birthday", sa.Date(), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("telegram", sa.String(length=100), nullable=True),
        sa.Column("is_vip", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("branch_id", sa.String(length=20), nullable=True),
        *money("debt"),
        *base_fields(),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("cost_price", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("sale_price", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("vip_price", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(length=20), nullable=False, server_default="pcs"),
        sa.Column("currency", currency, nullable=False, server_default="UZS"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("branch_id", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *base_fields(),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.String(length=20), nullable=False),
        sa.Column("branch_id", sa.String(length=20), nullable=False),
        *money("total_amount"),
        *money("paid_amount"),
        *money("debt_amount"),
        *money("profit_amount"),
        sa.Column("payment_type", payment_type, nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *base_fields(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_client_id", "orders", ["client_id"])
    op.create_index("ix_orders_branch_id", "orders", ["branch_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(18, 2), nullable=False),
        sa.Column("next_oil_change_date", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "debtors",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("client_id", sa.String(length=20), nullable=False),
        sa.Column("branch_id", sa.String(length=20), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        *money("total_debt"),
        *money("paid_amount"),
        *money("remaining_debt"),
        *money("last_payment"),
        *money("next_payment"),
        sa.Column("last_payment_date", sa.DateTime(), nullable=True),
        sa.Column("next_payment_due_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", debtor_status, nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *base_fields(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_debtors_client_id", "debtors", ["client_id"])
    op.create_index("ix_debtors_branch_id", "debtors", ["branch_id"])
    op.create_index("ix_debtors_order_id", "debtors", ["order_id"])
    op.create_index("ix_debtors_status", "debtors", ["status"])

    op.create_table(
        "debtor_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("debtor_id", sa.String(length=20), nullable=False),
        *money("amount"),
        sa.Column("payment_type", payment_type, nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("paid_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtors.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_debtor_payments_debtor_id", "debtor_payments", ["debtor_id"])

    op.create_table(
        "order_debts",
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("debtor_id", sa.String(length=20), nullable=False),
        sa.Column("linked_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtors.id"]),
        sa.PrimaryKeyConstraint("order_id"),
    )
    op.create_index("ix_order_debts_debtor_id", "order_debts", ["debtor_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        *money("amount"),
        sa.Column("payment_type", payment_type, nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("related_model", related_model, nullable=True),
        sa.Column("related_id", sa.String(length=30), nullable=True),
        sa.Column("client_id", sa.String(length=20), nullable=True),
        sa.Column("branch_id", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *base_fields(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_related_id", "transactions", ["related_id"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    op.create_table(
        "balance",
        sa.Column("id", sa.Integer(), nullable=False),
        *money("amount"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("balance")
    op.drop_table("transactions")
    op.drop_table("order_debts")
    op.drop_table("debtor_payments")
    op.drop_table("debtors")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("products")
    op.drop_table("clients")
    op.drop_table("branches")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
