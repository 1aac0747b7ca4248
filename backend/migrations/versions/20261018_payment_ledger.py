"""Payment ledger and cylinder labels

Revision ID: 20261018_payment_ledger
Revises: 20261018_initial_marketplace
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_payment_ledger"
down_revision = "20261018_initial_marketplace"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("cylinders", schema=None) as batch_op:
        batch_op.add_column(sa.Column("custom_name", sa.String(length=64), nullable=True))

    op.create_table(
        "payment_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("payee_id", sa.Integer(), nullable=True),
        sa.Column("entry_type", sa.String(24), nullable=False),
        sa.Column("liability_type", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("cause", sa.String(255), nullable=True),
        sa.Column("reference_id", sa.String(128), nullable=True),
        sa.Column("processed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.ForeignKeyConstraint(["payee_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["processed_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payment_entries", schema=None) as batch_op:
        batch_op.create_index("ix_payment_entries_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_payment_entries_status", ["status"], unique=False)
        batch_op.create_index("ix_payment_entries_seller_status", ["seller_id", "status"], unique=False)


def downgrade():
    op.drop_table("payment_entries")
    with op.batch_alter_table("cylinders", schema=None) as batch_op:
        batch_op.drop_column("custom_name")
