from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


TERMINAL_STATUSES = frozenset({"completed", "cancelled", "returned"})


class Order(db.Model):
    """
    Cylinder order document.

    STATUS: only services.order_state_machine.apply_transition changes
    `status`, using a conditional UPDATE on (id, status, version_id).

    PRICING: the totals are recomputed from the component columns on every
    insert/update (see _recompute_pricing below); stored totals are never
    taken from input.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        db.Index("ix_orders_seller_status", "seller_id", "status"),
        db.Index("ix_orders_driver_status", "driver_id", "status"),
        db.CheckConstraint("quantity >= 1", name="ck_orders_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable id, e.g. "ORD-1718031234567-42"
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("buyer_profiles.id"), nullable=False)
    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False)
    driver_id = db.Column(db.Integer, db.ForeignKey("driver_profiles.id"), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)

    # new, refill, return, supplier_change
    order_type = db.Column(db.String(16), nullable=False, default="new")
    cylinder_size = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    existing_cylinder_id = db.Column(db.Integer, db.ForeignKey("cylinders.id"), nullable=True)

    pickup_address = db.Column(db.String(255), nullable=True)
    pickup_latitude = db.Column(db.Float, nullable=True)
    pickup_longitude = db.Column(db.Float, nullable=True)
    delivery_address = db.Column(db.String(255), nullable=False)
    delivery_latitude = db.Column(db.Float, nullable=False)
    delivery_longitude = db.Column(db.Float, nullable=False)

    # Pricing snapshot (minor units)
    cylinder_price_cents = db.Column(db.Integer, nullable=False, default=0)
    security_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    urgent_delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    add_ons = db.Column(db.JSON, nullable=False, default=list)
    add_ons_total_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    # Deposit owed back to the buyer once a returned cylinder is received
    security_refund_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    # Stock was deducted at creation and must be put back on cancel
    stock_reserved = db.Column(db.Boolean, nullable=False, default=False)

    qr_code = db.Column(db.String(64), nullable=True, unique=True)
    qr_code_printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    qr_code_scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, default="cod")
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    transaction_id = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rating_stars = db.Column(db.Integer, nullable=True)
    rating_description = db.Column(db.Text, nullable=True)
    rated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invoice_number = db.Column(db.String(64), nullable=True, unique=True)
    invoice_url = db.Column(db.String(255), nullable=True)
    invoice_generated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_urgent = db.Column(db.Boolean, nullable=False, default=False)
    estimated_delivery_time = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_time = db.Column(db.DateTime(timezone=True), nullable=True)
    seller_ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    buyer_notes = db.Column(db.Text, nullable=True)
    seller_notes = db.Column(db.Text, nullable=True)
    driver_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    buyer = db.relationship("Buyer", foreign_keys=[buyer_id])
    seller = db.relationship("Seller", foreign_keys=[seller_id])
    driver = db.relationship("Driver", foreign_keys=[driver_id])
    warehouse = db.relationship("Warehouse")
    existing_cylinder = db.relationship("Cylinder", foreign_keys=[existing_cylinder_id])
    history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        order_by="OrderStatusHistory.id",
    )
    verifications = db.relationship(
        "CylinderVerification",
        backref="order",
        lazy=True,
        order_by="CylinderVerification.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def pricing_dict(self) -> dict:
        return {
            "cylinder_price_cents": self.cylinder_price_cents,
            "quantity": self.quantity,
            "security_charges_cents": self.security_charges_cents,
            "delivery_charges_cents": self.delivery_charges_cents,
            "urgent_delivery_fee_cents": self.urgent_delivery_fee_cents,
            "add_ons": list(self.add_ons or []),
            "add_ons_total_cents": self.add_ons_total_cents,
            "subtotal_cents": self.subtotal_cents,
            "grand_total_cents": self.grand_total_cents,
            "security_refund_cents": self.security_refund_cents,
        }

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "driver_id": self.driver_id,
            "warehouse_id": self.warehouse_id,
            "order_type": self.order_type,
            "cylinder_size": self.cylinder_size,
            "quantity": self.quantity,
            "existing_cylinder_id": self.existing_cylinder_id,
            "pickup_location": {
                "address": self.pickup_address,
                "latitude": self.pickup_latitude,
                "longitude": self.pickup_longitude,
            } if self.pickup_latitude is not None else None,
            "delivery_location": {
                "address": self.delivery_address,
                "latitude": self.delivery_latitude,
                "longitude": self.delivery_longitude,
            },
            "pricing": self.pricing_dict(),
            "status": self.status,
            "qr_code": self.qr_code,
            "qr_code_printed_at": to_utc_z(self.qr_code_printed_at) if self.qr_code_printed_at else None,
            "qr_code_scanned_at": to_utc_z(self.qr_code_scanned_at) if self.qr_code_scanned_at else None,
            "payment": {
                "method": self.payment_method,
                "status": self.payment_status,
                "transaction_id": self.transaction_id,
                "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            },
            "rating": {
                "stars": self.rating_stars,
                "description": self.rating_description,
                "rated_at": to_utc_z(self.rated_at),
            } if self.rating_stars else None,
            "invoice": {
                "number": self.invoice_number,
                "url": self.invoice_url,
                "generated_at": to_utc_z(self.invoice_generated_at),
            } if self.invoice_number else None,
            "is_urgent": self.is_urgent,
            "estimated_delivery_time": to_utc_z(self.estimated_delivery_time) if self.estimated_delivery_time else None,
            "actual_delivery_time": to_utc_z(self.actual_delivery_time) if self.actual_delivery_time else None,
            "seller_ready_at": to_utc_z(self.seller_ready_at) if self.seller_ready_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "buyer_notes": self.buyer_notes,
            "seller_notes": self.seller_notes,
            "driver_notes": self.driver_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_history:
            data["status_history"] = [h.to_dict() for h in self.history]
            data["verifications"] = [v.to_dict() for v in self.verifications]
        return data


@event.listens_for(Order, "before_insert")
@event.listens_for(Order, "before_update")
def _recompute_pricing(mapper, connection, target):
    from ..services.pricing import calculate_pricing, PricingInput

    result = calculate_pricing(PricingInput(
        unit_price_cents=target.cylinder_price_cents or 0,
        quantity=target.quantity or 1,
        security_charges_cents=target.security_charges_cents or 0,
        delivery_charges_cents=target.delivery_charges_cents or 0,
        urgent_delivery_fee_cents=target.urgent_delivery_fee_cents or 0,
        add_ons=target.add_ons or [],
    ))
    target.add_ons_total_cents = result.add_ons_total_cents
    target.subtotal_cents = result.subtotal_cents
    target.grand_total_cents = result.grand_total_cents


class OrderStatusHistory(db.Model):
    """Append-only audit of status changes; rows are never updated."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(24), nullable=True)
    status = db.Column(db.String(24), nullable=False)
    event = db.Column(db.String(32), nullable=False)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_status": self.from_status,
            "status": self.status,
            "event": self.event,
            "updated_by_user_id": self.updated_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class CylinderVerification(db.Model):
    """Weights recorded by the driver when accepting an order."""
    __tablename__ = "cylinder_verifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    cylinder_id = db.Column(db.Integer, db.ForeignKey("cylinders.id"), nullable=True)
    serial_number = db.Column(db.String(64), nullable=False)
    tare_weight = db.Column(db.Float, nullable=False)
    net_weight = db.Column(db.Float, nullable=False)
    gross_weight = db.Column(db.Float, nullable=False)
    weight_difference = db.Column(db.Float, nullable=False, default=0.0)
    photo_url = db.Column(db.String(255), nullable=True)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cylinder_id": self.cylinder_id,
            "serial_number": self.serial_number,
            "tare_weight": self.tare_weight,
            "net_weight": self.net_weight,
            "gross_weight": self.gross_weight,
            "weight_difference": self.weight_difference,
            "photo_url": self.photo_url,
            "verified_by_user_id": self.verified_by_user_id,
            "verified_at": to_utc_z(self.verified_at),
        }


class Rating(db.Model):
    """Buyer's rating of a completed order; feeds the seller's average."""
    __tablename__ = "ratings"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_ratings_order"),
        db.CheckConstraint("stars >= 1 AND stars <= 5", name="ck_ratings_stars_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    buyer_id = db.Column(db.Integer, db.ForeignKey("buyer_profiles.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False, index=True)
    stars = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    rating_type = db.Column(db.String(16), nullable=False, default="order")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "stars": self.stars,
            "description": self.description,
            "rating_type": self.rating_type,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentEntry(db.Model):
    """
    One line of an order's payment timeline.

    Records money that has to move because of an order: the sale owed to
    the seller, a deposit held against the cylinder, a delivery fee owed to
    the driver or a refund owed to the buyer. An admin clears a pending
    entry once the money has actually moved.
    """
    __tablename__ = "payment_entries"
    __table_args__ = (
        db.Index("ix_payment_entries_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False)
    # Who receives the money: seller (sale, deposit), driver (delivery_fee), buyer (refund)
    payee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # sale, security_deposit, delivery_fee, refund
    entry_type = db.Column(db.String(24), nullable=False)
    # revenue, liability, expense
    liability_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=True)
    # pending, completed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    cause = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.String(128), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", lazy="joined")
    payee = db.relationship("User", foreign_keys=[payee_id], lazy="joined")

    def to_dict(self) -> dict:
        payee = self.payee
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "order_type": self.order.order_type if self.order else None,
            "seller_id": self.seller_id,
            "type": self.entry_type,
            "liability_type": self.liability_type,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "cause": self.cause,
            "reference_id": self.reference_id,
            "person": {
                "id": payee.id,
                "role": payee.role,
                "name": payee.display_name,
            } if payee is not None else None,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "created_at": to_utc_z(self.created_at),
        }
