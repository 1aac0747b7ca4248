# Overview: Service-layer read models for the admin and seller dashboards and the seller's cylinder map.

"""
Dashboards

Read-only aggregates. Nothing here writes; every figure is computed from
orders, cylinders and inventories at request time.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Cylinder, Driver, Inventory, Notification, Order, Seller, User, Warehouse
from ..time_utils import to_utc_z, utcnow
from .warehouse_service import get_owned_warehouse

# Admin widget buckets
DELIVERED_STATUSES = ("delivered", "completed")
IN_PROGRESS_STATUSES = ("assigned", "pickup_ready", "in_transit", "refill_pickup", "refill_in_store",
                        "refill_ready", "return_pickup")
PENDING_STATUSES = ("pending", "refill_requested", "return_requested")
CLOSED_STATUSES = ("cancelled", "returned")

# Seller stat buckets
NEW_ORDER_STATUSES = ("pending", "assigned", "refill_requested")
IN_PROCESS_STATUSES = ("pickup_ready", "in_transit")

MONTHS_SHOWN = 6


def _fee_cents(order: Order) -> int:
    return (order.delivery_charges_cents or 0) + (order.urgent_delivery_fee_cents or 0)


def _percent(part: int, total: int) -> float:
    return round(part * 100.0 / total, 1) if total else 0.0


def _month_starts(now: datetime, count: int) -> list[datetime]:
    starts = []
    year, month = now.year, now.month
    for _ in range(count):
        starts.append(datetime(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


# =============================================================================
# Admin
# =============================================================================

def admin_widgets(admin: User, now: datetime | None = None) -> dict:
    """
    Platform overview for the admin home screen.

    Revenue is the platform's share: delivery and urgent fees.
    """
    now = now or utcnow()
    orders = db.session.query(Order).all()

    completed = [o for o in orders if o.status in DELIVERED_STATUSES]
    open_orders = [o for o in orders if o.status not in DELIVERED_STATUSES + CLOSED_STATUSES]
    revenue = {
        "total_cents": sum(_fee_cents(o) for o in orders if o.status not in CLOSED_STATUSES),
        "completed_cents": sum(_fee_cents(o) for o in completed),
        "pending_cents": sum(_fee_cents(o) for o in open_orders),
    }

    buckets = {
        "delivered": sum(1 for o in orders if o.status in DELIVERED_STATUSES),
        "in_progress": sum(1 for o in orders if o.status in IN_PROGRESS_STATUSES),
        "pending": sum(1 for o in orders if o.status in PENDING_STATUSES),
    }
    bucket_total = sum(buckets.values())
    order_status = [
        {"category": name, "count": count, "percentage": _percent(count, bucket_total)}
        for name, count in buckets.items()
    ]

    months = _month_starts(now, MONTHS_SHOWN)
    monthly = []
    for index, start in enumerate(months):
        end = months[index + 1] if index + 1 < len(months) else None
        in_month = [o for o in orders if o.created_at >= start and (end is None or o.created_at < end)]
        monthly.append({
            "month": start.strftime("%Y-%m"),
            "orders": len(in_month),
            "revenue_cents": sum(_fee_cents(o) for o in in_month if o.status in DELIVERED_STATUSES),
        })

    active_drivers = (
        db.session.query(func.count(Driver.id))
        .filter(Driver.is_active.is_(True), Driver.driver_status.in_(("available", "busy")))
        .scalar()
    )
    notifications = (
        db.session.query(Notification)
        .filter(Notification.user_id == admin.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(5)
        .all()
    )

    return {
        "total_sellers": db.session.query(func.count(Seller.id)).scalar(),
        "total_orders": len(orders),
        "revenue": revenue,
        "active_drivers": active_drivers,
        "order_status": order_status,
        "monthly": monthly,
        "recent_notifications": [n.to_dict() for n in notifications],
    }


# =============================================================================
# Seller
# =============================================================================

def _period_starts(now: datetime) -> dict:
    today = datetime(now.year, now.month, now.day)
    return {
        "today": today,
        "this_week": today - timedelta(days=today.weekday()),
        "this_month": datetime(now.year, now.month, 1),
    }


def _empty_stats() -> dict:
    return {
        "total_inventories": 0,
        "issued_cylinders": 0,
        "empty_cylinders": 0,
        "new_orders": 0,
        "in_process_orders": 0,
        "completed_orders": 0,
        "return_requests": 0,
        "refill_requests": 0,
        "revenue": {"today_cents": 0, "this_week_cents": 0, "this_month_cents": 0},
        "locations_with_inventory": [],
    }


def seller_stats(seller: Seller, warehouse_id: int | None = None, now: datetime | None = None) -> dict:
    """
    Counters for the seller home screen, optionally for one warehouse.

    Revenue sums the grand total of paid orders placed in each period.
    """
    now = now or utcnow()
    inventories = db.session.query(Inventory).filter(Inventory.seller_id == seller.id)
    orders = db.session.query(Order).filter(Order.seller_id == seller.id)
    cylinders = db.session.query(Cylinder).filter(Cylinder.seller_id == seller.id)
    if warehouse_id is not None:
        warehouse = get_owned_warehouse(seller, warehouse_id)
        inventories = inventories.filter(Inventory.warehouse_id == warehouse.id)
        if inventories.count() == 0:
            return {"warehouse_id": warehouse.id, **_empty_stats()}
        orders = orders.filter(Order.warehouse_id == warehouse.id)
        cylinders = cylinders.filter(Cylinder.warehouse_id == warehouse.id)

    inventories = inventories.all()
    orders = orders.all()
    cylinders = cylinders.all()

    periods = _period_starts(now)
    paid = [o for o in orders if o.payment_status == "completed"]
    revenue = {
        f"{name}_cents": sum(o.grand_total_cents for o in paid if o.created_at >= start)
        for name, start in periods.items()
    }

    warehouses = {w.id: w for w in db.session.query(Warehouse).filter(Warehouse.seller_id == seller.id)}
    locations = []
    for inventory in inventories:
        warehouse = warehouses.get(inventory.warehouse_id)
        locations.append({
            "inventory_id": inventory.id,
            "warehouse_id": inventory.warehouse_id,
            "warehouse_name": warehouse.name if warehouse else None,
            "city": inventory.city,
            "total_inventory": inventory.total_inventory,
            "price_per_kg_cents": inventory.price_per_kg_cents,
        })

    stats = {
        "total_inventories": len(inventories),
        "issued_cylinders": sum(1 for c in cylinders if c.status == "active" and c.buyer_id is not None),
        "empty_cylinders": sum(1 for c in cylinders if c.status == "empty"),
        "new_orders": sum(1 for o in orders if o.status in NEW_ORDER_STATUSES),
        "in_process_orders": sum(1 for o in orders if o.status in IN_PROCESS_STATUSES),
        "completed_orders": sum(1 for o in orders if o.status == "completed"),
        "return_requests": sum(
            1 for o in orders if o.order_type == "return" and o.status in ("return_requested", "return_pickup")
        ),
        "refill_requests": sum(1 for o in orders if o.order_type == "refill" and o.status == "refill_requested"),
        "revenue": revenue,
        "locations_with_inventory": locations,
    }
    if warehouse_id is not None:
        stats = {"warehouse_id": warehouse_id, **stats}
    return stats


def cylinder_map(seller: Seller) -> list[dict]:
    """The seller's cylinders out with buyers, with their last known position."""
    rows = (
        db.session.query(Cylinder)
        .filter(
            Cylinder.seller_id == seller.id,
            Cylinder.status == "active",
            Cylinder.buyer_id.isnot(None),
            Cylinder.current_latitude.isnot(None),
            Cylinder.current_longitude.isnot(None),
        )
        .order_by(Cylinder.id)
        .all()
    )
    buyers = {}
    if rows:
        buyer_ids = {c.buyer_id for c in rows}
        buyers = {u.id: u for u in db.session.query(User).filter(User.id.in_(buyer_ids))}

    result = []
    for cylinder in rows:
        buyer = buyers.get(cylinder.buyer_id)
        result.append({
            "cylinder_id": cylinder.id,
            "serial_number": cylinder.serial_number,
            "custom_name": cylinder.custom_name,
            "cylinder_size": cylinder.cylinder_size,
            "status": cylinder.status,
            "buyer": {
                "id": buyer.id,
                "name": buyer.display_name,
                "phone_number": buyer.phone_number,
            } if buyer is not None else None,
            "location": {"latitude": cylinder.current_latitude, "longitude": cylinder.current_longitude},
            "updated_at": to_utc_z(cylinder.updated_at),
        })
    return result
