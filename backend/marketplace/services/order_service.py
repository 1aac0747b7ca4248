# Overview: Service-layer operations for orders; creation, queries and seller/driver actions outside the state table.

"""
Order Service

Creates orders (pricing snapshot, stock reservation, order number) and
answers the per-role order queries. Status changes are delegated to
order_state_machine.apply_transition.

INITIAL STATUS BY TYPE:
- new, supplier_change -> pending (stock reserved now)
- refill               -> refill_requested (buyer's own cylinder)
- return               -> return_requested (deposit refund recorded)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..constants import ORDER_TYPES, PAYMENT_METHODS
from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import Buyer, Cylinder, Inventory, InventoryAddOn, Order, OrderStatusHistory, Seller, Warehouse
from ..realtime import get_broadcaster
from ..time_utils import utcnow
from ..validation import (
    validate_choice,
    validate_cylinder_size,
    validate_point,
    validate_quantity,
    require_fields,
)
from . import inventory_service, notification_service, payment_service
from .concurrency import begin_write, run_with_retry
from .document_service import next_order_number
from .geolocation_service import find_driver_for_location, haversine_m
from .order_state_machine import SYSTEM, apply_transition
from .pricing import PricingInput, calculate_pricing, delivery_charges, gas_price_cents

logger = logging.getLogger(__name__)

INITIAL_STATUS = {
    "new": "pending",
    "supplier_change": "pending",
    "refill": "refill_requested",
    "return": "return_requested",
}


def _discounted(price_cents: int, discount_percent: int) -> int:
    if not discount_percent:
        return price_cents
    factor = Decimal(100 - discount_percent) / Decimal(100)
    return int((Decimal(price_cents) * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _resolve_add_ons(inventory: Inventory, raw) -> list[dict]:
    """Snapshot add-on prices from the seller's catalogue; clients never send prices."""
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ValidationError("add_ons must be a list", {"add_ons": "not a list"})

    by_id = {a.id: a for a in inventory.add_ons}
    snapshot = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or entry.get("add_on_id") is None:
            raise ValidationError(f"add_ons[{index}].add_on_id is required", {f"add_ons[{index}].add_on_id": "required"})
        add_on_id = validate_quantity(entry["add_on_id"], f"add_ons[{index}].add_on_id")
        quantity = validate_quantity(entry.get("quantity", 1), f"add_ons[{index}].quantity")
        add_on = by_id.get(add_on_id)
        if add_on is None:
            raise NotFoundError(f"Add-on {add_on_id} not offered by this seller")
        if add_on.quantity < quantity:
            raise ConflictError(
                f"Only {add_on.quantity} x {add_on.title} left",
                {"add_on_id": add_on_id, "available": add_on.quantity},
            )
        snapshot.append({
            "add_on_id": add_on.id,
            "title": add_on.title,
            "price_cents": _discounted(add_on.price_cents, add_on.discount_percent),
            "quantity": quantity,
        })
    return snapshot


def _pick_warehouse(seller: Seller, warehouse_id, cylinder_size: str, quantity: int, lat: float, lng: float):
    """The requested warehouse, or the seller's nearest one that has the stock."""
    if warehouse_id is not None:
        return _seller_warehouse(seller, warehouse_id)

    candidates = []
    for warehouse in seller.warehouses:
        if not warehouse.is_active:
            continue
        inventory = inventory_service.inventory_for_warehouse(warehouse.id)
        if inventory is None or not inventory.is_active:
            continue
        stock = inventory.stock_for(cylinder_size)
        if stock is None or stock.quantity < quantity:
            continue
        candidates.append((haversine_m(lat, lng, warehouse.latitude, warehouse.longitude), warehouse, inventory))
    if not candidates:
        raise ConflictError("Seller has no stock of this size", {"cylinder_size": cylinder_size})
    candidates.sort(key=lambda c: (c[0], c[1].id))
    return candidates[0][1], candidates[0][2]


def _seller_warehouse(seller: Seller, warehouse_id):
    warehouse = db.session.get(Warehouse, validate_quantity(warehouse_id, "warehouse_id"))
    if warehouse is None or warehouse.seller_id != seller.id or not warehouse.is_active:
        raise NotFoundError("Warehouse not found")
    inventory = inventory_service.inventory_for_warehouse(warehouse.id)
    if inventory is None or not inventory.is_active:
        raise NotFoundError("Warehouse has no active inventory")
    return warehouse, inventory


def _usable_warehouse(seller: Seller, warehouse_id):
    if warehouse_id is None:
        return None
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None or warehouse.seller_id != seller.id or not warehouse.is_active:
        return None
    inventory = inventory_service.inventory_for_warehouse(warehouse.id)
    if inventory is None or not inventory.is_active:
        return None
    return warehouse, inventory


def _cylinder_warehouse(seller: Seller, cylinder: Cylinder, lat: float, lng: float):
    """
    Warehouse that takes a buyer's cylinder back in.

    Refills and returns move no stock out, so availability is not checked.
    Preference: the cylinder's own warehouse, then the warehouse of the order
    that issued it, then the seller's nearest active warehouse.
    """
    found = _usable_warehouse(seller, cylinder.warehouse_id)
    if found is None and cylinder.origin_order_id is not None:
        origin = db.session.get(Order, cylinder.origin_order_id)
        if origin is not None:
            found = _usable_warehouse(seller, origin.warehouse_id)
    if found is not None:
        return found

    candidates = []
    for warehouse in seller.warehouses:
        pair = _usable_warehouse(seller, warehouse.id)
        if pair is None:
            continue
        candidates.append((haversine_m(lat, lng, warehouse.latitude, warehouse.longitude), warehouse.id, pair))
    if not candidates:
        raise NotFoundError("Seller has no active warehouse")
    candidates.sort(key=lambda c: (c[0], c[1]))
    return candidates[0][2]


def _approved_seller(seller_id) -> Seller:
    seller = db.session.get(Seller, validate_quantity(seller_id, "seller_id"))
    if seller is None or not seller.is_active:
        raise NotFoundError("Seller not found")
    if seller.seller_status != "approved":
        raise ConflictError("Seller is not approved", {"seller_status": seller.seller_status})
    return seller


def _buyer_cylinder(buyer: Buyer, cylinder_id) -> Cylinder:
    if cylinder_id is None:
        raise ValidationError("existing_cylinder_id is required", {"existing_cylinder_id": "required"})
    cylinder = db.session.get(Cylinder, validate_quantity(cylinder_id, "existing_cylinder_id"))
    if cylinder is None or cylinder.buyer_id != buyer.id:
        raise NotFoundError("Cylinder not found")
    if cylinder.status not in ("active", "empty"):
        raise ConflictError("Cylinder is already being processed", {"status": cylinder.status})
    open_order = (
        db.session.query(Order.id)
        .filter(
            Order.existing_cylinder_id == cylinder.id,
            Order.status.notin_(("completed", "cancelled", "returned")),
        )
        .first()
    )
    if open_order is not None:
        raise ConflictError("Cylinder already has an open order", {"order_id": open_order.id})
    return cylinder


def _resolve_source(buyer: Buyer | None, data: dict, order_type: str, lat: float, lng: float):
    """
    (seller, warehouse, inventory, existing_cylinder, cylinder_size, quantity).

    Refills and returns go back to the seller who issued the cylinder; a
    seller_id naming anyone else is rejected.
    """
    if order_type not in ("refill", "return"):
        require_fields(data, "seller_id")
        seller = _approved_seller(data["seller_id"])
        cylinder_size = validate_cylinder_size(data.get("cylinder_size"))
        quantity = validate_quantity(data.get("quantity", 1))
        warehouse, inventory = _pick_warehouse(seller, data.get("warehouse_id"), cylinder_size, quantity, lat, lng)
        return seller, warehouse, inventory, None, cylinder_size, quantity

    if buyer is None:
        raise ValidationError("existing_cylinder_id is required", {"existing_cylinder_id": "required"})
    cylinder = _buyer_cylinder(buyer, data.get("existing_cylinder_id"))
    if cylinder.seller_id is None:
        raise ConflictError("Cylinder has no issuing seller", {"existing_cylinder_id": cylinder.id})
    if data.get("seller_id") is not None and validate_quantity(data["seller_id"], "seller_id") != cylinder.seller_id:
        raise ValidationError(
            "Cylinder must go back to the seller who issued it",
            {"seller_id": "does not match cylinder"},
        )
    seller = _approved_seller(cylinder.seller_id)
    if data.get("warehouse_id") is not None:
        warehouse, inventory = _seller_warehouse(seller, data["warehouse_id"])
    else:
        warehouse, inventory = _cylinder_warehouse(seller, cylinder, lat, lng)
    return seller, warehouse, inventory, cylinder, cylinder.cylinder_size, 1


def _charges(order_type: str, existing_cylinder, inventory: Inventory, cylinder_size: str, quantity: int, raw_add_ons):
    """(unit_price, security, security_refund, add_ons) for one order."""
    if order_type == "return":
        return 0, 0, existing_cylinder.security_fee_cents, []
    unit_price = gas_price_cents(cylinder_size, inventory.price_per_kg_cents)
    if order_type == "refill":
        # Refills keep the deposit already paid on the buyer's cylinder
        security = 0
    else:
        stock = inventory.stock_for(cylinder_size)
        security = (stock.security_price_cents if stock else 0) * quantity
    return unit_price, security, 0, _resolve_add_ons(inventory, raw_add_ons)


def _urgent_flag(data: dict) -> bool:
    is_urgent = data.get("is_urgent", False)
    if not isinstance(is_urgent, bool):
        raise ValidationError("is_urgent must be a boolean", {"is_urgent": "not a boolean"})
    return is_urgent


def create_order(buyer: Buyer, data: dict, broadcaster=None) -> Order:
    """
    Place an order.

    Required: delivery_location {address, latitude, longitude}.
    new / supplier_change: seller_id, cylinder_size, quantity.
    refill / return: existing_cylinder_id; seller, warehouse, size and
    quantity come from the cylinder.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "delivery_location")

    order_type = validate_choice(data.get("order_type", "new"), ORDER_TYPES, "order_type")
    payment_method = validate_choice(data.get("payment_method", "cod"), PAYMENT_METHODS, "payment_method")
    is_urgent = _urgent_flag(data)

    delivery = data["delivery_location"]
    lat, lng = validate_point(delivery, "delivery_location")
    address = str(delivery.get("address") or "").strip()
    if not address:
        raise ValidationError("delivery_location.address is required", {"delivery_location.address": "required"})

    seller, warehouse, inventory, existing_cylinder, cylinder_size, quantity = _resolve_source(
        buyer, data, order_type, lat, lng
    )

    delivery_cents, urgent_cents = delivery_charges(is_urgent)
    unit_price, security, security_refund, add_ons = _charges(
        order_type, existing_cylinder, inventory, cylinder_size, quantity, data.get("add_ons")
    )

    reserve = order_type in ("new", "supplier_change")
    pickup = data.get("pickup_location")
    if pickup is None and existing_cylinder is not None:
        pickup = delivery
    pickup_lat = pickup_lng = None
    if pickup is not None:
        pickup_lat, pickup_lng = validate_point(pickup, "pickup_location")

    def _op():
        begin_write()
        if reserve:
            inventory_service.reserve_stock(inventory.id, cylinder_size, quantity)
        for entry in add_ons:
            add_on = db.session.get(InventoryAddOn, entry["add_on_id"])
            if add_on.quantity < entry["quantity"]:
                raise ConflictError(f"Only {add_on.quantity} x {add_on.title} left", {"add_on_id": add_on.id})
            add_on.quantity -= entry["quantity"]
        if existing_cylinder is not None and order_type == "refill":
            existing_cylinder.status = "empty"

        now = utcnow()
        order = Order(
            order_number=next_order_number(),
            buyer_id=buyer.id,
            seller_id=seller.id,
            warehouse_id=warehouse.id,
            order_type=order_type,
            cylinder_size=cylinder_size,
            quantity=quantity,
            existing_cylinder_id=existing_cylinder.id if existing_cylinder else None,
            pickup_address=(str(pickup.get("address") or "").strip() or None) if pickup else None,
            pickup_latitude=pickup_lat,
            pickup_longitude=pickup_lng,
            delivery_address=address,
            delivery_latitude=lat,
            delivery_longitude=lng,
            cylinder_price_cents=unit_price,
            security_charges_cents=security,
            delivery_charges_cents=delivery_cents,
            urgent_delivery_fee_cents=urgent_cents,
            add_ons=add_ons,
            security_refund_cents=security_refund,
            status=INITIAL_STATUS[order_type],
            stock_reserved=reserve,
            payment_method=payment_method,
            payment_status="pending",
            is_urgent=is_urgent,
            estimated_delivery_time=now + timedelta(hours=2 if is_urgent else 24),
            buyer_notes=(str(data["buyer_notes"]).strip() if data.get("buyer_notes") else None),
            created_at=now,
        )
        db.session.add(order)
        db.session.flush()
        payment_service.record_order_placed(order)
        db.session.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            status=order.status,
            event="create",
            updated_by_user_id=buyer.id,
            created_at=now,
        ))
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Could not allocate a unique order number, please retry")
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s created by buyer %s (%s)", order.order_number, buyer.id, order.order_type)
    try:
        notification_service.notify_order_created(order, broadcaster or get_broadcaster())
    except Exception:
        logger.exception("Failed to announce order %s", order.order_number)
    return order


def quote_order(data: dict, buyer: Buyer | None = None) -> dict:
    """Price an order without reserving anything; refills and returns need the buyer's cylinder."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "delivery_location")
    order_type = validate_choice(data.get("order_type", "new"), ORDER_TYPES, "order_type")
    lat, lng = validate_point(data["delivery_location"], "delivery_location")
    is_urgent = _urgent_flag(data)

    seller, warehouse, inventory, existing_cylinder, cylinder_size, quantity = _resolve_source(
        buyer, data, order_type, lat, lng
    )
    unit_price, security, security_refund, add_ons = _charges(
        order_type, existing_cylinder, inventory, cylinder_size, quantity, data.get("add_ons")
    )
    delivery_cents, urgent_cents = delivery_charges(is_urgent)
    pricing = PricingInput(
        unit_price_cents=unit_price,
        quantity=quantity,
        security_charges_cents=security,
        delivery_charges_cents=delivery_cents,
        urgent_delivery_fee_cents=urgent_cents,
        add_ons=add_ons,
    )
    result = calculate_pricing(pricing)
    return {
        "order_type": order_type,
        "seller_id": seller.id,
        "warehouse_id": warehouse.id,
        "cylinder_size": cylinder_size,
        "quantity": quantity,
        "cylinder_price_cents": pricing.unit_price_cents,
        "security_charges_cents": pricing.security_charges_cents,
        "security_refund_cents": security_refund,
        "delivery_charges_cents": pricing.delivery_charges_cents,
        "urgent_delivery_fee_cents": pricing.urgent_delivery_fee_cents,
        "add_ons": pricing.add_ons,
        **result.to_dict(),
    }



# =============================================================================
# Queries
# =============================================================================

def _visible_to(order: Order, actor) -> bool:
    if actor.role == "admin":
        return True
    if actor.role == "buyer":
        return order.buyer_id == actor.id
    if actor.role == "seller":
        return order.seller_id == actor.id
    if actor.role == "driver":
        return order.driver_id == actor.id
    return False


def get_order_for_actor(order_id: int, actor) -> Order:
    order = db.session.get(Order, order_id)
    # Other users' orders look absent rather than forbidden
    if order is None or not _visible_to(order, actor):
        raise NotFoundError("Order not found")
    return order


def list_orders(actor, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
    query = db.session.query(Order)
    if actor.role == "buyer":
        query = query.filter(Order.buyer_id == actor.id)
    elif actor.role == "seller":
        query = query.filter(Order.seller_id == actor.id)
    elif actor.role == "driver":
        query = query.filter(Order.driver_id == actor.id)
    elif actor.role != "admin":
        raise PermissionDeniedError("Not allowed to list orders")
    if status:
        statuses = [s.strip() for s in status.split(",") if s.strip()]
        query = query.filter(Order.status.in_(statuses))
    limit = max(1, min(int(limit), 200))
    return query.order_by(Order.id.desc()).offset(max(0, int(offset))).limit(limit).all()


# =============================================================================
# Actions outside the transition table
# =============================================================================

def mark_ready_for_pickup(order_id: int, seller: Seller, broadcaster=None) -> tuple[Order, bool]:
    """
    Seller has the cylinders ready. Records the time and tries to auto-assign
    a zone driver near the warehouse. Returns (order, driver_assigned).
    """
    order = db.session.get(Order, order_id)
    if order is None or order.seller_id != seller.id:
        raise NotFoundError("Order not found")
    if order.status != "pending":
        raise InvalidTransitionError(
            f"Only pending orders can be marked ready (order is {order.status})",
            {"status": order.status},
        )

    order.seller_ready_at = utcnow()
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Order was modified by another request", {"order_id": order_id})
    except Exception:
        db.session.rollback()
        raise

    warehouse = order.warehouse
    driver = find_driver_for_location(warehouse.latitude, warehouse.longitude)
    if driver is None:
        logger.info("No zone driver available for order %s; waiting for admin", order.order_number)
        return order, False

    try:
        order = apply_transition(
            order.id,
            "assign_driver",
            seller,
            {"driver_id": driver.id, "notes": "Auto-assigned by zone"},
            broadcaster=broadcaster,
        )
    except ConflictError:
        # Someone assigned a driver in the meantime
        db.session.rollback()
        order = db.session.get(Order, order_id, populate_existing=True)
        return order, order.driver_id is not None
    return order, True


def mark_qr_printed(order_id: int, driver) -> Order:
    order = get_order_for_actor(order_id, driver)
    if not order.qr_code:
        raise InvalidTransitionError("Order has no QR code yet", {"status": order.status})
    order.qr_code_printed_at = utcnow()
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Order was modified by another request", {"order_id": order_id})
    except Exception:
        db.session.rollback()
        raise
    return order


def complete_overdue_deliveries(now=None, broadcaster=None) -> dict:
    """
    Complete delivered orders the buyer never confirmed.

    Uses DELIVERY_CONFIRMATION_TIMEOUT_HOURS; each order goes through the
    normal confirm_delivery transition as the system actor.
    """
    now = now or utcnow()
    cutoff = now - timedelta(hours=current_app.config["DELIVERY_CONFIRMATION_TIMEOUT_HOURS"])
    overdue = (
        db.session.query(Order.id)
        .filter(Order.status == "delivered", Order.delivery_scanned_at <= cutoff)
        .order_by(Order.id)
        .all()
    )

    summary = {"completed": [], "failed": []}
    for (order_id,) in overdue:
        try:
            order = apply_transition(order_id, "confirm_delivery", SYSTEM, broadcaster=broadcaster)
            summary["completed"].append(order.order_number)
        except (ConflictError, InvalidTransitionError) as exc:
            logger.info("Skipping order %s: %s", order_id, exc)
        except Exception as exc:
            logger.exception("Automatic completion failed for order %s", order_id)
            summary["failed"].append({"order_id": order_id, "error": str(exc)})
    return summary


def list_buyer_cylinders(buyer: Buyer) -> list[Cylinder]:
    return (
        db.session.query(Cylinder)
        .filter(Cylinder.buyer_id == buyer.id)
        .order_by(Cylinder.id)
        .all()
    )
