"""transactions ledger

Revision ID: 0002_transactions
Revises: 0001_init
Create Date: 2026-10-05
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_transactions"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    inspector = _inspector()
    if "transactions" not in set(inspector.get_table_names()):
        op.create_table(
            "transactions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("account_id", sa.String(), nullable=True),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("gross_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("fee_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            sa.Column("coin_type", sa.String(), nullable=True),
            sa.Column("network", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="pending"),
            sa.Column("payment_status", sa.String(), nullable=True),
            sa.Column("nowpayments_id", sa.String(), nullable=True),
            sa.Column("pay_address", sa.String(), nullable=True),
            sa.Column("pay_amount", sa.Numeric(28, 12), nullable=True),
            sa.Column("pay_currency", sa.String(), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("tx_hash", sa.String(), nullable=True),
            sa.Column("confirmations", sa.Integer(), nullable=True),
            sa.Column("confirmations_required", sa.Integer(), nullable=True),
            sa.Column("wallet_address", sa.String(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        )

    idxs = {idx["name"] for idx in _inspector().get_indexes("transactions")}
    if "ix_transactions_id" not in idxs:
        op.create_index("ix_transactions_id", "transactions", ["id"])
    if "ix_transactions_user_id" not in idxs:
        op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    if "ix_transactions_account_id" not in idxs:
        op.create_index("ix_transactions_account_id", "transactions", ["account_id"])
    if "ix_transactions_type" not in idxs:
        op.create_index("ix_transactions_type", "transactions", ["type"])
    if "ix_transactions_status" not in idxs:
        op.create_index("ix_transactions_status", "transactions", ["status"])
    # webhook idempotency key
    if "ix_transactions_nowpayments_id" not in idxs:
        op.create_index("ix_transactions_nowpayments_id", "transactions", ["nowpayments_id"], unique=True)


def downgrade() -> None:
    op.drop_table("transactions")
