# Overview: Service-layer operations for geospatial search; sellers near a point, drivers by zone.

"""
Geospatial Locator

Distances are great-circle (haversine) on a sphere of radius 6,371,000 m.
The SQL query only narrows candidates with a latitude/longitude bounding
box; the haversine distance decides membership.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Driver, Inventory, InventoryStock, Seller, Warehouse
from ..errors import ValidationError
from ..validation import validate_coordinates, validate_cylinder_size
from .pricing import gas_price_cents


EARTH_RADIUS_M = 6_371_000

SORT_KEYS = ("distance", "rating", "price_low", "price_high")


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a slightly above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def bounding_box(lat: float, lng: float, radius_m: float) -> tuple[float, float, float | None, float | None]:
    """
    (min_lat, max_lat, min_lng, max_lng) enclosing the search circle.

    Longitude bounds are None when the box would wrap the antimeridian or a pole.
    """
    d_lat = math.degrees(radius_m / EARTH_RADIUS_M)
    min_lat = max(-90.0, lat - d_lat)
    max_lat = min(90.0, lat + d_lat)

    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6 or max_lat >= 90.0 or min_lat <= -90.0:
        return min_lat, max_lat, None, None

    # Half-width at the circle's tangent meridians, which sit poleward of lat
    ratio = math.sin(radius_m / EARTH_RADIUS_M) / cos_lat
    if ratio >= 1.0:
        return min_lat, max_lat, None, None
    d_lng = math.degrees(math.asin(ratio))
    min_lng = lng - d_lng
    max_lng = lng + d_lng
    if min_lng < -180.0 or max_lng > 180.0:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lng, max_lng


@dataclass
class NearbySeller:
    seller: Seller
    warehouse: Warehouse
    inventory: Inventory
    distance_m: float
    cylinder_size: str | None = None

    @property
    def rating(self) -> float:
        return self.seller.rating_average or 0.0

    @property
    def price_per_kg_cents(self) -> int:
        return self.inventory.price_per_kg_cents

    def to_dict(self) -> dict:
        data = {
            "seller_id": self.seller.id,
            "business_name": self.seller.business_name,
            "rating": {"average": self.seller.rating_average, "count": self.seller.rating_count},
            "distance_m": round(self.distance_m, 1),
            "warehouse": self.warehouse.to_dict(),
            "inventory": self.inventory.to_dict(),
            "price_per_kg_cents": self.price_per_kg_cents,
        }
        if self.cylinder_size:
            stock = self.inventory.stock_for(self.cylinder_size)
            data["cylinder_size"] = self.cylinder_size
            data["gas_price_cents"] = gas_price_cents(self.cylinder_size, self.price_per_kg_cents)
            data["security_price_cents"] = stock.security_price_cents if stock else None
            data["available_quantity"] = stock.quantity if stock else 0
        return data


def _has_stock(inventory: Inventory, cylinder_size: str | None) -> bool:
    if cylinder_size is None:
        return (inventory.total_inventory or 0) > 0
    stock = inventory.stock_for(cylinder_size)
    return stock is not None and stock.quantity > 0


def _sort(results: list[NearbySeller], sort_by: str) -> list[NearbySeller]:
    # Ties always fall back to ascending distance
    if sort_by == "rating":
        key = lambda r: (-r.rating, r.distance_m)
    elif sort_by == "price_low":
        key = lambda r: (r.price_per_kg_cents, r.distance_m)
    elif sort_by == "price_high":
        key = lambda r: (-r.price_per_kg_cents, r.distance_m)
    else:
        key = lambda r: r.distance_m
    return sorted(results, key=key)


def find_nearby_sellers(
    latitude,
    longitude,
    radius_m=None,
    sort_by: str = "distance",
    cylinder_size: str | None = None,
) -> list[NearbySeller]:
    """
    Approved, active sellers with an in-stock warehouse within radius_m.

    Each seller appears once, represented by its nearest qualifying warehouse.
    """
    lat, lng = validate_coordinates(latitude, longitude)
    if radius_m is None:
        radius_m = current_app.config["DEFAULT_SEARCH_RADIUS_M"]
    try:
        radius = float(radius_m)
    except (TypeError, ValueError):
        raise ValidationError("radius must be a number of metres", {"radius": "not a number"})
    if math.isnan(radius) or radius < 0:
        raise ValidationError("radius must be >= 0", {"radius": "negative"})
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_KEYS)}", {"sort_by": "invalid choice"})
    if cylinder_size is not None:
        validate_cylinder_size(cylinder_size)

    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius)

    query = (
        db.session.query(Warehouse, Inventory, Seller)
        .join(Inventory, Inventory.warehouse_id == Warehouse.id)
        .join(Seller, Seller.id == Warehouse.seller_id)
        .filter(
            Warehouse.is_active.is_(True),
            Inventory.is_active.is_(True),
            Seller.is_active.is_(True),
            Seller.seller_status == "approved",
            Warehouse.latitude >= min_lat,
            Warehouse.latitude <= max_lat,
        )
    )
    if min_lng is not None:
        query = query.filter(Warehouse.longitude >= min_lng, Warehouse.longitude <= max_lng)
    if cylinder_size is not None:
        query = query.join(
            InventoryStock,
            (InventoryStock.inventory_id == Inventory.id) & (InventoryStock.cylinder_size == cylinder_size),
        ).filter(InventoryStock.quantity > 0)

    nearest: dict[int, NearbySeller] = {}
    for warehouse, inventory, seller in query.all():
        distance = haversine_m(lat, lng, warehouse.latitude, warehouse.longitude)
        if distance > radius:
            continue
        if not _has_stock(inventory, cylinder_size):
            continue
        current = nearest.get(seller.id)
        if current is None or distance < current.distance_m:
            nearest[seller.id] = NearbySeller(
                seller=seller,
                warehouse=warehouse,
                inventory=inventory,
                distance_m=distance,
                cylinder_size=cylinder_size,
            )

    return _sort(list(nearest.values()), sort_by)


def find_driver_for_location(latitude: float, longitude: float) -> Driver | None:
    """
    Pick a driver for auto-assignment.

    Candidates are active, available drivers with auto-assign enabled whose
    zone circle contains the point; the nearest zone centre wins.
    """
    drivers = (
        db.session.query(Driver)
        .filter(
            Driver.is_active.is_(True),
            Driver.driver_status == "available",
            Driver.auto_assign_orders.is_(True),
            Driver.zone_latitude.isnot(None),
            Driver.zone_longitude.isnot(None),
        )
        .order_by(Driver.id)
        .all()
    )

    default_km = current_app.config["DEFAULT_DRIVER_ZONE_RADIUS_KM"]
    best = None
    best_distance = None
    for driver in drivers:
        distance = haversine_m(latitude, longitude, driver.zone_latitude, driver.zone_longitude)
        radius_m = (driver.zone_radius_km or default_km) * 1000
        if distance > radius_m:
            continue
        if best is None or distance < best_distance:
            best = driver
            best_distance = distance
    return best
