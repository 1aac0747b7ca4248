# Overview: Service-layer operations for seller warehouses (stock locations).

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, PermissionDeniedError
from ..models import Seller, Warehouse
from ..validation import ModelValidationPolicy, validate_payload


WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "city", "address", "latitude", "longitude", "is_active"},
    required_on_create={"name", "city", "address", "latitude", "longitude"},
)


def list_warehouses(seller: Seller, include_inactive: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse).filter_by(seller_id=seller.id)
    if not include_inactive:
        query = query.filter(Warehouse.is_active.is_(True))
    return query.order_by(Warehouse.id).all()


def get_owned_warehouse(seller: Seller, warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError("Warehouse not found")
    if warehouse.seller_id != seller.id:
        raise PermissionDeniedError("Warehouse belongs to another seller")
    return warehouse


def create_warehouse(seller: Seller, payload: dict) -> Warehouse:
    patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
    warehouse = Warehouse(seller_id=seller.id, **patch)
    db.session.add(warehouse)
    db.session.commit()
    return warehouse


def update_warehouse(seller: Seller, warehouse_id: int, payload: dict) -> Warehouse:
    warehouse = get_owned_warehouse(seller, warehouse_id)
    patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=True)
    for key, value in patch.items():
        setattr(warehouse, key, value)
    if "city" in patch and warehouse.inventory is not None:
        warehouse.inventory.city = patch["city"]
    db.session.commit()
    return warehouse


def deactivate_warehouse(seller: Seller, warehouse_id: int) -> Warehouse:
    """Warehouses referenced by orders are never deleted, only hidden from search."""
    warehouse = get_owned_warehouse(seller, warehouse_id)
    warehouse.is_active = False
    db.session.commit()
    return warehouse
