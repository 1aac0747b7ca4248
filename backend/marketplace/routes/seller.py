# Overview: Flask API routes for seller operations; parses input and returns JSON responses.

# backend/marketplace/routes/seller.py
"""
Seller API routes

Warehouses, inventory and the seller's side of the order flow. Pending
sellers may only read and edit their own profile until an admin approves them.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import allow_pending_seller, require_auth, require_role
from ..errors import DomainError, ValidationError, error_response, internal_error
from ..services import (
    dashboard_service,
    inventory_service,
    order_service,
    payment_service,
    rating_service,
    seller_service,
    warehouse_service,
)
from ..services.order_state_machine import allowed_events, apply_transition


seller_bp = Blueprint("seller", __name__, url_prefix="/api/seller")


@seller_bp.get("/profile")
@require_auth
@require_role("seller")
@allow_pending_seller
def profile_route():
    return jsonify({"seller": g.current_user.to_dict()}), 200


@seller_bp.patch("/profile")
@require_auth
@require_role("seller")
@allow_pending_seller
def update_profile_route():
    """Body: any of business_name, email, phone_number."""
    try:
        seller = seller_service.update_profile(g.current_user, request.get_json(silent=True))
        return jsonify({"seller": seller.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update profile")


# =============================================================================
# Warehouses
# =============================================================================

@seller_bp.get("/warehouses")
@require_auth
@require_role("seller")
def list_warehouses_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    warehouses = warehouse_service.list_warehouses(g.current_user, include_inactive=include_inactive)
    return jsonify({"warehouses": [w.to_dict() for w in warehouses], "count": len(warehouses)}), 200


@seller_bp.post("/warehouses")
@require_auth
@require_role("seller")
def create_warehouse_route():
    try:
        warehouse = warehouse_service.create_warehouse(g.current_user, request.get_json(silent=True) or {})
        return jsonify({"warehouse": warehouse.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create warehouse")


@seller_bp.patch("/warehouses/<int:warehouse_id>")
@require_auth
@require_role("seller")
def update_warehouse_route(warehouse_id: int):
    try:
        warehouse = warehouse_service.update_warehouse(g.current_user, warehouse_id, request.get_json(silent=True) or {})
        return jsonify({"warehouse": warehouse.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update warehouse")


@seller_bp.delete("/warehouses/<int:warehouse_id>")
@require_auth
@require_role("seller")
def deactivate_warehouse_route(warehouse_id: int):
    try:
        warehouse = warehouse_service.deactivate_warehouse(g.current_user, warehouse_id)
        return jsonify({"warehouse": warehouse.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to deactivate warehouse")


# =============================================================================
# Inventory
# =============================================================================

@seller_bp.get("/inventory")
@require_auth
@require_role("seller")
def list_inventory_route():
    inventories = inventory_service.list_seller_inventory(g.current_user.id)
    return jsonify({"inventory": [inv.to_dict() for inv in inventories], "count": len(inventories)}), 200


@seller_bp.put("/warehouses/<int:warehouse_id>/inventory")
@require_auth
@require_role("seller")
def upsert_inventory_route(warehouse_id: int):
    """
    Create or update the inventory of one warehouse.

    Body: price_per_kg_cents, cylinders {size: {quantity, security_price_cents}},
    add_ons [{title, price_cents, discount_percent, quantity, description}].
    """
    try:
        inventory = inventory_service.upsert_inventory(g.current_user, warehouse_id, request.get_json(silent=True) or {})
        return jsonify({"inventory": inventory.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update inventory")


@seller_bp.patch("/inventory/<int:inventory_id>/stock")
@require_auth
@require_role("seller")
def set_stock_route(inventory_id: int):
    try:
        data = request.get_json(silent=True) or {}
        inventory = inventory_service.set_stock_quantity(
            g.current_user,
            inventory_id,
            data.get("cylinder_size"),
            data.get("quantity"),
            security_price_cents=data.get("security_price_cents"),
        )
        return jsonify({"inventory": inventory.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update stock")


# =============================================================================
# Orders
# =============================================================================

@seller_bp.get("/orders")
@require_auth
@require_role("seller")
def list_orders_route():
    try:
        orders = order_service.list_orders(
            g.current_user,
            status=request.args.get("status"),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list orders")


@seller_bp.get("/orders/<int:order_id>")
@require_auth
@require_role("seller")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_actor(order_id, g.current_user)
        return jsonify({
            "order": order.to_dict(include_history=True),
            "allowed_events": allowed_events(order, g.current_user),
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load order")


@seller_bp.post("/orders/<int:order_id>/ready")
@require_auth
@require_role("seller")
def ready_for_pickup_route(order_id: int):
    """Cylinders are ready; assigns a zone driver automatically when one is free."""
    try:
        order, assigned = order_service.mark_ready_for_pickup(order_id, g.current_user)
        return jsonify({"order": order.to_dict(), "driver_assigned": assigned}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to mark order ready")


@seller_bp.post("/orders/<int:order_id>/assign")
@require_auth
@require_role("seller")
def assign_driver_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order_service.get_order_for_actor(order_id, g.current_user)
        order = apply_transition(
            order_id, "assign_driver", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to assign driver")


@seller_bp.post("/orders/<int:order_id>/refilled")
@require_auth
@require_role("seller")
def mark_refilled_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order_service.get_order_for_actor(order_id, g.current_user)
        order = apply_transition(
            order_id, "mark_refilled", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to mark cylinder refilled")


@seller_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_role("seller")
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order_service.get_order_for_actor(order_id, g.current_user)
        order = apply_transition(
            order_id, "cancel", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel order")


@seller_bp.get("/ratings")
@require_auth
@require_role("seller")
def list_ratings_route():
    ratings = rating_service.list_seller_ratings(g.current_user.id, limit=request.args.get("limit", 50, type=int))
    return jsonify({
        "ratings": [r.to_dict() for r in ratings],
        "average": g.current_user.rating_average,
        "count": g.current_user.rating_count,
    }), 200


# =============================================================================
# Pricing, dashboard and payments
# =============================================================================

@seller_bp.put("/update-city-price")
@require_auth
@require_role("seller")
def update_city_price_route():
    """Body: {"city": "Lahore", "price_per_kg_cents": 31000}"""
    try:
        result = inventory_service.update_city_price(g.current_user, request.get_json(silent=True))
        return jsonify(result), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update city price")


@seller_bp.get("/dashboard/stats")
@require_auth
@require_role("seller")
def dashboard_stats_route():
    try:
        return jsonify({"stats": dashboard_service.seller_stats(g.current_user)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load dashboard")


@seller_bp.get("/dashboard/warehouse-stats")
@require_auth
@require_role("seller")
def warehouse_stats_route():
    """Query: warehouse_id (required)."""
    try:
        warehouse_id = request.args.get("warehouse_id", type=int)
        if warehouse_id is None:
            raise ValidationError("warehouse_id is required", {"warehouse_id": "required"})
        return jsonify({"stats": dashboard_service.seller_stats(g.current_user, warehouse_id=warehouse_id)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load warehouse dashboard")


@seller_bp.get("/cylinders/map")
@require_auth
@require_role("seller")
def cylinder_map_route():
    cylinders = dashboard_service.cylinder_map(g.current_user)
    return jsonify({"cylinders": cylinders, "count": len(cylinders)}), 200


@seller_bp.get("/payments")
@require_auth
@require_role("seller")
def payment_timeline_route():
    """
    The seller's payment timeline.

    Query: date_from, date_to (YYYY-MM-DD), status, type, search (order
    number), page, limit.
    """
    try:
        return jsonify(payment_service.seller_timeline(g.current_user.id, request.args)), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load payments")
