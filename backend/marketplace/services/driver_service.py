# Overview: Service-layer operations for drivers; live position, availability and zone settings.

from __future__ import annotations

import logging

from ..constants import DRIVER_STATUSES
from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Cylinder, Driver, Order
from ..realtime import order_room, safe_emit
from ..time_utils import to_utc_z, utcnow
from ..validation import validate_choice, validate_coordinates

logger = logging.getLogger(__name__)


def update_location(driver: Driver, latitude, longitude, broadcaster=None) -> list[str]:
    """
    Record the driver's position, move the cylinders they are carrying and
    push the position to everyone tracking their in-transit orders.

    Returns the order numbers that received a tracking update.
    """
    lat, lng = validate_coordinates(latitude, longitude)
    now = utcnow()
    driver.current_latitude = lat
    driver.current_longitude = lng
    driver.location_updated_at = now

    carrying = (
        db.session.query(Order)
        .filter(Order.driver_id == driver.id, Order.status.in_(("in_transit", "return_pickup")))
        .all()
    )
    for order in carrying:
        cylinders = db.session.query(Cylinder).filter(Cylinder.origin_order_id == order.id)
        if order.existing_cylinder_id:
            cylinders = db.session.query(Cylinder).filter(
                (Cylinder.origin_order_id == order.id) | (Cylinder.id == order.existing_cylinder_id)
            )
        for cylinder in cylinders.all():
            cylinder.current_latitude = lat
            cylinder.current_longitude = lng
    db.session.commit()

    payload = {"driver_id": driver.id, "latitude": lat, "longitude": lng, "updated_at": to_utc_z(now)}
    tracked = []
    for order in carrying:
        safe_emit(broadcaster, order_room(order.order_number), "driver_location_update",
                  {**payload, "order_number": order.order_number})
        tracked.append(order.order_number)
    return tracked


def set_availability(driver: Driver, status: str) -> Driver:
    """Drivers toggle available/offline; busy is managed by order assignment."""
    status = validate_choice(status, DRIVER_STATUSES, "driver_status")
    if status == "busy":
        raise ValidationError("busy is set automatically by order assignment", {"driver_status": "not settable"})
    if driver.driver_status == "busy" and status == "offline":
        active = (
            db.session.query(Order.id)
            .filter(
                Order.driver_id == driver.id,
                Order.status.in_(("assigned", "pickup_ready", "in_transit", "refill_pickup", "return_pickup")),
            )
            .first()
        )
        if active is not None:
            raise ConflictError("Finish or hand over active orders before going offline", {"order_id": active.id})
    driver.driver_status = status
    db.session.commit()
    logger.info("Driver %s is now %s", driver.id, status)
    return driver


def update_zone(driver: Driver, data: dict) -> Driver:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    lat, lng = validate_coordinates(data.get("latitude"), data.get("longitude"))
    radius = data.get("radius_km", driver.zone_radius_km or 10)
    try:
        radius = float(radius)
    except (TypeError, ValueError):
        raise ValidationError("radius_km must be a number", {"radius_km": "not a number"})
    if radius <= 0 or radius > 100:
        raise ValidationError("radius_km must be between 0 and 100", {"radius_km": "out of range"})

    driver.zone_id = (str(data["zone_id"]).strip()[:32] if data.get("zone_id") else driver.zone_id)
    driver.zone_name = (str(data["name"]).strip()[:64] if data.get("name") else driver.zone_name)
    driver.zone_latitude = lat
    driver.zone_longitude = lng
    driver.zone_radius_km = radius
    if "auto_assign_orders" in data:
        if not isinstance(data["auto_assign_orders"], bool):
            raise ValidationError("auto_assign_orders must be a boolean", {"auto_assign_orders": "not a boolean"})
        driver.auto_assign_orders = data["auto_assign_orders"]
    db.session.commit()
    return driver
