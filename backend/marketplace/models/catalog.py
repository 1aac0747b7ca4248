from __future__ import annotations

from sqlalchemy import event, func, select, update

from ..extensions import db
from ..time_utils import to_utc_z


class Warehouse(db.Model):
    """Seller-owned stock location; the point searched by the geospatial locator."""
    __tablename__ = "warehouses"
    __table_args__ = (
        db.Index("ix_warehouses_lat_lng", "latitude", "longitude"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    city = db.Column(db.String(64), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    seller = db.relationship("Seller", backref=db.backref("warehouses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "name": self.name,
            "city": self.city,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Inventory(db.Model):
    """
    One inventory record per seller per warehouse.

    total_inventory is derived from the stock rows and maintained by
    refresh_inventory_total(); it is never written from client input.
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("seller_id", "warehouse_id", name="uq_inventories_seller_warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    city = db.Column(db.String(64), nullable=False)
    price_per_kg_cents = db.Column(db.Integer, nullable=False)
    total_inventory = db.Column(db.Integer, nullable=False, default=0)
    issued_cylinders = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    warehouse = db.relationship("Warehouse", backref=db.backref("inventory", uselist=False, lazy=True))
    stock = db.relationship(
        "InventoryStock",
        backref="inventory",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InventoryStock.cylinder_size",
    )
    add_ons = db.relationship(
        "InventoryAddOn",
        backref="inventory",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InventoryAddOn.id",
    )

    def stock_for(self, cylinder_size: str):
        for row in self.stock:
            if row.cylinder_size == cylinder_size:
                return row
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "warehouse_id": self.warehouse_id,
            "city": self.city,
            "price_per_kg_cents": self.price_per_kg_cents,
            "total_inventory": self.total_inventory,
            "issued_cylinders": self.issued_cylinders,
            "is_active": self.is_active,
            "cylinders": {row.cylinder_size: row.to_dict() for row in self.stock},
            "add_ons": [a.to_dict() for a in self.add_ons],
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryStock(db.Model):
    __tablename__ = "inventory_stock"
    __table_args__ = (
        db.UniqueConstraint("inventory_id", "cylinder_size", name="uq_inventory_stock_size"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_stock_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=False, index=True)
    cylinder_size = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    # Refundable deposit charged per cylinder of this size
    security_price_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "security_price_cents": self.security_price_cents,
        }


class InventoryAddOn(db.Model):
    """Accessory sold alongside a cylinder (regulator, pipe, stove)."""
    __tablename__ = "inventory_add_ons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=False, index=True)
    title = db.Column(db.String(128), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    discount_percent = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "price_cents": self.price_cents,
            "description": self.description,
            "discount_percent": self.discount_percent,
            "quantity": self.quantity,
        }


def refresh_inventory_total(connection, inventory_id: int) -> None:
    """Recompute Inventory.total_inventory from its stock rows."""
    total = (
        select(func.coalesce(func.sum(InventoryStock.quantity), 0))
        .where(InventoryStock.inventory_id == inventory_id)
        .scalar_subquery()
    )
    connection.execute(
        update(Inventory.__table__)
        .where(Inventory.__table__.c.id == inventory_id)
        .values(total_inventory=total)
    )


@event.listens_for(InventoryStock, "after_insert")
@event.listens_for(InventoryStock, "after_update")
@event.listens_for(InventoryStock, "after_delete")
def _stock_changed(mapper, connection, target):
    refresh_inventory_total(connection, target.inventory_id)


class Cylinder(db.Model):
    """
    A physical, serial-numbered cylinder.

    Created when a driver verifies weights for an order; custody moves with
    the order (seller -> driver -> buyer) and back on refill / return.
    """
    __tablename__ = "cylinders"
    __table_args__ = (
        db.Index("ix_cylinders_buyer_status", "buyer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(db.String(64), nullable=False, unique=True)
    qr_code = db.Column(db.String(64), nullable=False, unique=True)
    cylinder_size = db.Column(db.String(8), nullable=False)
    # Buyer's own label, e.g. "Kitchen"
    custom_name = db.Column(db.String(64), nullable=True)

    seller_id = db.Column(db.Integer, db.ForeignKey("seller_profiles.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("buyer_profiles.id"), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    # Order that first issued this cylinder (no FK: orders reference cylinders too)
    origin_order_id = db.Column(db.Integer, nullable=True, index=True)

    tare_weight = db.Column(db.Float, nullable=True)
    net_weight = db.Column(db.Float, nullable=True)
    gross_weight = db.Column(db.Float, nullable=True)
    weight_difference = db.Column(db.Float, nullable=True)
    photo_url = db.Column(db.String(255), nullable=True)

    security_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    # active, empty, in_refill, returned
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    current_latitude = db.Column(db.Float, nullable=True)
    current_longitude = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "qr_code": self.qr_code,
            "cylinder_size": self.cylinder_size,
            "custom_name": self.custom_name,
            "seller_id": self.seller_id,
            "buyer_id": self.buyer_id,
            "warehouse_id": self.warehouse_id,
            "origin_order_id": self.origin_order_id,
            "weights": {
                "tare": self.tare_weight,
                "net": self.net_weight,
                "gross": self.gross_weight,
                "difference": self.weight_difference,
            },
            "photo_url": self.photo_url,
            "security_fee_cents": self.security_fee_cents,
            "status": self.status,
            "current_location": {
                "latitude": self.current_latitude,
                "longitude": self.current_longitude,
            } if self.current_latitude is not None else None,
            "updated_at": to_utc_z(self.updated_at),
        }
