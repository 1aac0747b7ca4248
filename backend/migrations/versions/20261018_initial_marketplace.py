"""Initial marketplace schema

Revision ID: 20261018_initial_marketplace
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial_marketplace"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    # -------------------------------------------------------------------------
    # Users (joined-table inheritance on users.role)
    # -------------------------------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("phone_number", sa.String(16), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("otp_hash", sa.String(64), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("language", sa.String(16), nullable=False, server_default="english"),
        sa.Column("fcm_token", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone_number"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_role_active", ["role", "is_active"], unique=False)

    op.create_table(
        "buyer_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(128), nullable=False),
        sa.Column("buyer_type", sa.String(16), nullable=False, server_default="domestic"),
        sa.Column("cnic", sa.String(15), nullable=True),
        sa.ForeignKeyConstraint(["id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "seller_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.String(128), nullable=False),
        sa.Column("license_number", sa.String(64), nullable=False),
        sa.Column("license_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ntn", sa.String(32), nullable=True),
        sa.Column("seller_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(255), nullable=True),
        sa.Column("rating_average", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("seller_profiles", schema=None) as batch_op:
        batch_op.create_index("ix_seller_profiles_seller_status", ["seller_status"], unique=False)

    op.create_table(
        "driver_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(128), nullable=False),
        sa.Column("vehicle_number", sa.String(32), nullable=False),
        sa.Column("license_number", sa.String(64), nullable=False),
        sa.Column("zone_id", sa.String(32), nullable=True),
        sa.Column("zone_name", sa.String(64), nullable=True),
        sa.Column("zone_latitude", sa.Float(), nullable=True),
        sa.Column("zone_longitude", sa.Float(), nullable=True),
        sa.Column("zone_radius_km", sa.Float(), nullable=False, server_default=sa.text("10")),
        sa.Column("auto_assign_orders", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("driver_status", sa.String(16), nullable=False, server_default="available"),
        sa.Column("current_latitude", sa.Float(), nullable=True),
        sa.Column("current_longitude", sa.Float(), nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("vehicle_number"),
    )
    with op.batch_alter_table("driver_profiles", schema=None) as batch_op:
        batch_op.create_index("ix_driver_profiles_driver_status", ["driver_status"], unique=False)

    op.create_table(
        "admin_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(128), nullable=False),
        sa.ForeignKeyConstraint(["id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "buyer_addresses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(64), nullable=False, server_default="Home"),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("city", sa.String(64), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["buyer_id"], ["buyer_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("buyer_addresses", schema=None) as batch_op:
        batch_op.create_index("ix_buyer_addresses_buyer_id", ["buyer_id"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refresh_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
        sa.UniqueConstraint("refresh_token_hash"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)

    # -------------------------------------------------------------------------
    # Catalogue
    # -------------------------------------------------------------------------
    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("city", sa.String(64), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouses", schema=None) as batch_op:
        batch_op.create_index("ix_warehouses_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_warehouses_lat_lng", ["latitude", "longitude"], unique=False)

    op.create_table(
        "inventories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("city", sa.String(64), nullable=False),
        sa.Column("price_per_kg_cents", sa.Integer(), nullable=False),
        sa.Column("total_inventory", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("issued_cylinders", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("seller_id", "warehouse_id", name="uq_inventories_seller_warehouse"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventories", schema=None) as batch_op:
        batch_op.create_index("ix_inventories_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_inventories_warehouse_id", ["warehouse_id"], unique=False)

    op.create_table(
        "inventory_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_id", sa.Integer(), nullable=False),
        sa.Column("cylinder_size", sa.String(8), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("security_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_stock_quantity_nonneg"),
        sa.ForeignKeyConstraint(["inventory_id"], ["inventories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inventory_id", "cylinder_size", name="uq_inventory_stock_size"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_stock", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_stock_inventory_id", ["inventory_id"], unique=False)

    op.create_table(
        "inventory_add_ons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("discount_percent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["inventory_id"], ["inventories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_add_ons", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_add_ons_inventory_id", ["inventory_id"], unique=False)

    op.create_table(
        "cylinders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(64), nullable=False),
        sa.Column("qr_code", sa.String(64), nullable=False),
        sa.Column("cylinder_size", sa.String(8), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=True),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("origin_order_id", sa.Integer(), nullable=True),
        sa.Column("tare_weight", sa.Float(), nullable=True),
        sa.Column("net_weight", sa.Float(), nullable=True),
        sa.Column("gross_weight", sa.Float(), nullable=True),
        sa.Column("weight_difference", sa.Float(), nullable=True),
        sa.Column("photo_url", sa.String(255), nullable=True),
        sa.Column("security_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("current_latitude", sa.Float(), nullable=True),
        sa.Column("current_longitude", sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.ForeignKeyConstraint(["buyer_id"], ["buyer_profiles.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("serial_number"),
        sa.UniqueConstraint("qr_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cylinders", schema=None) as batch_op:
        batch_op.create_index("ix_cylinders_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_cylinders_origin_order_id", ["origin_order_id"], unique=False)
        batch_op.create_index("ix_cylinders_status", ["status"], unique=False)
        batch_op.create_index("ix_cylinders_buyer_status", ["buyer_id", "status"], unique=False)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("driver_id", sa.Integer(), nullable=True),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("order_type", sa.String(16), nullable=False, server_default="new"),
        sa.Column("cylinder_size", sa.String(8), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("existing_cylinder_id", sa.Integer(), nullable=True),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("pickup_latitude", sa.Float(), nullable=True),
        sa.Column("pickup_longitude", sa.Float(), nullable=True),
        sa.Column("delivery_address", sa.String(255), nullable=False),
        sa.Column("delivery_latitude", sa.Float(), nullable=False),
        sa.Column("delivery_longitude", sa.Float(), nullable=False),
        sa.Column("cylinder_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("security_charges_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_charges_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("urgent_delivery_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("add_ons", sa.JSON(), nullable=False),
        sa.Column("add_ons_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("grand_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("security_refund_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("stock_reserved", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("qr_code", sa.String(64), nullable=True),
        sa.Column("qr_code_printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qr_code_scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="cod"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating_stars", sa.Integer(), nullable=True),
        sa.Column("rating_description", sa.Text(), nullable=True),
        sa.Column("rated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("invoice_url", sa.String(255), nullable=True),
        sa.Column("invoice_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_delivery_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_delivery_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seller_ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("buyer_notes", sa.Text(), nullable=True),
        sa.Column("seller_notes", sa.Text(), nullable=True),
        sa.Column("driver_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("quantity >= 1", name="ck_orders_quantity_positive"),
        sa.ForeignKeyConstraint(["buyer_id"], ["buyer_profiles.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.ForeignKeyConstraint(["driver_id"], ["driver_profiles.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["existing_cylinder_id"], ["cylinders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sa.UniqueConstraint("qr_code"),
        sa.UniqueConstraint("invoice_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_buyer_created", ["buyer_id", "created_at"], unique=False)
        batch_op.create_index("ix_orders_seller_status", ["seller_id", "status"], unique=False)
        batch_op.create_index("ix_orders_driver_status", ["driver_id", "status"], unique=False)

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(24), nullable=True),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("event", sa.String(32), nullable=False),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_status_history", schema=None) as batch_op:
        batch_op.create_index("ix_order_status_history_order_id", ["order_id"], unique=False)

    op.create_table(
        "cylinder_verifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("cylinder_id", sa.Integer(), nullable=True),
        sa.Column("serial_number", sa.String(64), nullable=False),
        sa.Column("tare_weight", sa.Float(), nullable=False),
        sa.Column("net_weight", sa.Float(), nullable=False),
        sa.Column("gross_weight", sa.Float(), nullable=False),
        sa.Column("weight_difference", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("photo_url", sa.String(255), nullable=True),
        sa.Column("verified_by_user_id", sa.Integer(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["cylinder_id"], ["cylinders.id"]),
        sa.ForeignKeyConstraint(["verified_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cylinder_verifications", schema=None) as batch_op:
        batch_op.create_index("ix_cylinder_verifications_order_id", ["order_id"], unique=False)

    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("stars", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rating_type", sa.String(16), nullable=False, server_default="order"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("stars >= 1 AND stars <= 5", name="ck_ratings_stars_range"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["buyer_id"], ["buyer_profiles.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["seller_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", name="uq_ratings_order"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ratings", schema=None) as batch_op:
        batch_op.create_index("ix_ratings_buyer_id", ["buyer_id"], unique=False)
        batch_op.create_index("ix_ratings_seller_id", ["seller_id"], unique=False)

    # -------------------------------------------------------------------------
    # Notifications and counters
    # -------------------------------------------------------------------------
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False, server_default="general"),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_user_read", ["user_id", "is_read"], unique=False)
        batch_op.create_index("ix_notifications_order_id", ["order_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_document_sequences_name"),
        sqlite_autoincrement=True,
    )


def downgrade():
    for table in (
        "document_sequences",
        "notifications",
        "ratings",
        "cylinder_verifications",
        "order_status_history",
        "orders",
        "cylinders",
        "inventory_add_ons",
        "inventory_stock",
        "inventories",
        "warehouses",
        "session_tokens",
        "buyer_addresses",
        "admin_profiles",
        "driver_profiles",
        "seller_profiles",
        "buyer_profiles",
        "users",
    ):
        op.drop_table(table)
