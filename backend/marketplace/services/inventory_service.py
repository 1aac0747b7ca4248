# Overview: Service-layer operations for seller inventory; stock levels, add-ons and reservations.

"""
Inventory Service

Stock is counted per (inventory, cylinder size). Orders deduct stock at
creation with a conditional UPDATE (quantity >= requested), so two buyers
racing for the last cylinder cannot both succeed. Cancellations and
returns put stock back the same way.

Inventory.total_inventory is derived; every write path here ends with
refresh_inventory_total().
"""

from __future__ import annotations

import logging

from sqlalchemy import case, update

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import Inventory, InventoryAddOn, InventoryStock, Seller, Warehouse, refresh_inventory_total
from ..validation import validate_cylinder_size, validate_money_cents, validate_quantity
from .concurrency import begin_write, run_with_retry

logger = logging.getLogger(__name__)


def _expire_inventory(inventory_id: int) -> None:
    """Core UPDATEs bypass the identity map; drop stale copies."""
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, Inventory) and obj.id == inventory_id:
            db.session.expire(obj)
        elif isinstance(obj, InventoryStock) and obj.inventory_id == inventory_id:
            db.session.expire(obj)


def get_inventory(inventory_id: int) -> Inventory:
    inventory = db.session.get(Inventory, inventory_id)
    if inventory is None:
        raise NotFoundError("Inventory not found")
    return inventory


def get_owned_inventory(seller: Seller, inventory_id: int) -> Inventory:
    inventory = get_inventory(inventory_id)
    if inventory.seller_id != seller.id:
        raise PermissionDeniedError("Inventory belongs to another seller")
    return inventory


def list_seller_inventory(seller_id: int) -> list[Inventory]:
    return (
        db.session.query(Inventory)
        .filter_by(seller_id=seller_id)
        .order_by(Inventory.id)
        .all()
    )


def _clean_cylinders(raw) -> dict[str, dict]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("cylinders must be an object keyed by size", {"cylinders": "not an object"})
    cleaned = {}
    for size, entry in raw.items():
        validate_cylinder_size(size)
        if not isinstance(entry, dict):
            raise ValidationError(f"cylinders.{size} must be an object", {f"cylinders.{size}": "not an object"})
        cleaned[size] = {
            "quantity": validate_quantity(entry.get("quantity", 0), f"cylinders.{size}.quantity", minimum=0),
            "security_price_cents": validate_money_cents(
                entry.get("security_price_cents", 0), f"cylinders.{size}.security_price_cents"
            ),
        }
    return cleaned


def _clean_add_ons(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("add_ons must be a list", {"add_ons": "not a list"})
    cleaned = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or not str(entry.get("title") or "").strip():
            raise ValidationError(f"add_ons[{index}].title is required", {f"add_ons[{index}].title": "required"})
        discount = validate_quantity(entry.get("discount_percent", 0), f"add_ons[{index}].discount_percent", minimum=0)
        if discount > 100:
            raise ValidationError("discount_percent cannot exceed 100", {f"add_ons[{index}].discount_percent": "too large"})
        cleaned.append({
            "title": str(entry["title"]).strip()[:128],
            "price_cents": validate_money_cents(entry.get("price_cents"), f"add_ons[{index}].price_cents"),
            "description": (str(entry["description"]).strip()[:255] if entry.get("description") else None),
            "discount_percent": discount,
            "quantity": validate_quantity(entry.get("quantity", 0), f"add_ons[{index}].quantity", minimum=0),
        })
    return cleaned


def upsert_inventory(seller: Seller, warehouse_id: int, data: dict) -> Inventory:
    """
    Create or replace the inventory of one of the seller's warehouses.

    Given stock sizes are set to the given quantities; add-ons, when given,
    replace the existing list. total_inventory in the payload is ignored.
    """
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError("Warehouse not found")
    if warehouse.seller_id != seller.id:
        raise PermissionDeniedError("Warehouse belongs to another seller")

    cylinders = _clean_cylinders(data.get("cylinders"))
    add_ons = _clean_add_ons(data.get("add_ons")) if "add_ons" in data else None

    def _op():
        begin_write()
        inventory = (
            db.session.query(Inventory)
            .filter_by(seller_id=seller.id, warehouse_id=warehouse.id)
            .first()
        )
        if inventory is None:
            if data.get("price_per_kg_cents") is None:
                raise ValidationError("price_per_kg_cents is required", {"price_per_kg_cents": "required"})
            inventory = Inventory(
                seller_id=seller.id,
                warehouse_id=warehouse.id,
                city=warehouse.city,
                price_per_kg_cents=0,
            )
            db.session.add(inventory)

        if data.get("price_per_kg_cents") is not None:
            inventory.price_per_kg_cents = validate_money_cents(data["price_per_kg_cents"], "price_per_kg_cents")
        if data.get("city"):
            inventory.city = str(data["city"]).strip()[:64]
        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean", {"is_active": "not a boolean"})
            inventory.is_active = data["is_active"]

        db.session.flush()

        for size, entry in cylinders.items():
            row = (
                db.session.query(InventoryStock)
                .filter_by(inventory_id=inventory.id, cylinder_size=size)
                .first()
            )
            if row is None:
                row = InventoryStock(inventory_id=inventory.id, cylinder_size=size)
                db.session.add(row)
            row.quantity = entry["quantity"]
            row.security_price_cents = entry["security_price_cents"]

        if add_ons is not None:
            for existing in list(inventory.add_ons):
                db.session.delete(existing)
            for entry in add_ons:
                db.session.add(InventoryAddOn(inventory_id=inventory.id, **entry))

        db.session.flush()
        refresh_inventory_total(db.session.connection(), inventory.id)
        db.session.commit()
        return inventory

    try:
        inventory = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    logger.info("Inventory %s updated by seller %s", inventory.id, seller.id)
    return inventory


def set_stock_quantity(seller: Seller, inventory_id: int, cylinder_size: str, quantity, security_price_cents=None) -> Inventory:
    inventory = get_owned_inventory(seller, inventory_id)
    cylinder_size = validate_cylinder_size(cylinder_size)
    quantity = validate_quantity(quantity, "quantity", minimum=0)
    if security_price_cents is not None:
        security_price_cents = validate_money_cents(security_price_cents, "security_price_cents")

    def _op():
        begin_write()
        row = (
            db.session.query(InventoryStock)
            .filter_by(inventory_id=inventory.id, cylinder_size=cylinder_size)
            .first()
        )
        if row is None:
            row = InventoryStock(inventory_id=inventory.id, cylinder_size=cylinder_size, security_price_cents=0)
            db.session.add(row)
        row.quantity = quantity
        if security_price_cents is not None:
            row.security_price_cents = security_price_cents
        db.session.commit()
        return get_inventory(inventory_id)

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def update_city_price(seller: Seller, data: dict) -> dict:
    """Set price_per_kg_cents on every one of the seller's inventories in a city (case-insensitive)."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    city = str(data.get("city") or "").strip()
    if not city:
        raise ValidationError("city is required", {"city": "required"})
    if data.get("price_per_kg_cents") is None:
        raise ValidationError("price_per_kg_cents is required", {"price_per_kg_cents": "required"})
    price = validate_money_cents(data["price_per_kg_cents"], "price_per_kg_cents")

    inventories = (
        db.session.query(Inventory)
        .filter(Inventory.seller_id == seller.id, db.func.lower(Inventory.city) == city.lower())
        .all()
    )
    if not inventories:
        raise NotFoundError(f"No inventory found in {city}")

    for inventory in inventories:
        inventory.price_per_kg_cents = price
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    total = db.session.query(Inventory.id).filter(Inventory.seller_id == seller.id).count()
    logger.info("Seller %s set %s price to %s/kg on %d inventories", seller.id, city, price, len(inventories))
    return {
        "city": city,
        "price_per_kg_cents": price,
        "updated_count": len(inventories),
        "total_inventories": total,
    }


def reserve_stock(inventory_id: int, cylinder_size: str, quantity: int) -> None:
    """
    Deduct stock for a new order inside the caller's transaction.

    Raises ConflictError when fewer than `quantity` cylinders are left.
    """
    result = db.session.execute(
        update(InventoryStock)
        .where(
            InventoryStock.inventory_id == inventory_id,
            InventoryStock.cylinder_size == cylinder_size,
            InventoryStock.quantity >= quantity,
        )
        .values(quantity=InventoryStock.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        row = (
            db.session.query(InventoryStock.quantity)
            .filter_by(inventory_id=inventory_id, cylinder_size=cylinder_size)
            .scalar()
        )
        raise ConflictError(
            "Insufficient stock",
            {"cylinder_size": cylinder_size, "requested": quantity, "available": row or 0},
        )
    db.session.execute(
        update(Inventory)
        .where(Inventory.id == inventory_id)
        .values(issued_cylinders=Inventory.issued_cylinders + quantity)
        .execution_options(synchronize_session=False)
    )
    refresh_inventory_total(db.session.connection(), inventory_id)
    _expire_inventory(inventory_id)


def release_stock(inventory_id: int, cylinder_size: str, quantity: int) -> None:
    """Put cylinders back on the shelf (cancel, return) inside the caller's transaction."""
    result = db.session.execute(
        update(InventoryStock)
        .where(
            InventoryStock.inventory_id == inventory_id,
            InventoryStock.cylinder_size == cylinder_size,
        )
        .values(quantity=InventoryStock.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.add(InventoryStock(
            inventory_id=inventory_id,
            cylinder_size=cylinder_size,
            quantity=quantity,
            security_price_cents=0,
        ))
        db.session.flush()
    db.session.execute(
        update(Inventory)
        .where(Inventory.id == inventory_id)
        .values(issued_cylinders=case(
            (Inventory.issued_cylinders >= quantity, Inventory.issued_cylinders - quantity),
            else_=0,
        ))
        .execution_options(synchronize_session=False)
    )
    refresh_inventory_total(db.session.connection(), inventory_id)
    _expire_inventory(inventory_id)


def release_add_ons(entries: list[dict]) -> None:
    """Put an order's add-on snapshot back into the catalogue inside the caller's transaction."""
    for entry in entries or []:
        quantity = int(entry.get("quantity") or 0)
        if quantity <= 0:
            continue
        result = db.session.execute(
            update(InventoryAddOn)
            .where(InventoryAddOn.id == entry.get("add_on_id"))
            .values(quantity=InventoryAddOn.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # The seller replaced their add-on list since the order was placed
            logger.warning("Add-on %s no longer exists; %d unit(s) not restocked", entry.get("add_on_id"), quantity)
            continue
        add_on = db.session.get(InventoryAddOn, entry["add_on_id"])
        if add_on is not None:
            db.session.expire(add_on, ["quantity"])


def inventory_for_warehouse(warehouse_id: int) -> Inventory | None:
    return db.session.query(Inventory).filter_by(warehouse_id=warehouse_id).first()
