# Overview: Flask API routes for buyer operations; parses input and returns JSON responses.

# backend/marketplace/routes/buyer.py
"""Buyer API routes: seller discovery, ordering, confirmation and ratings"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, NotFoundError, error_response, internal_error
from ..extensions import db
from ..models import Seller, Warehouse
from ..services import buyer_service, geolocation_service, inventory_service, order_service, rating_service
from ..services.order_state_machine import allowed_events, apply_transition


buyer_bp = Blueprint("buyer", __name__, url_prefix="/api/buyer")


@buyer_bp.get("/sellers/nearby")
@require_auth
@require_role("buyer", "admin")
def nearby_sellers_route():
    """
    Approved sellers with stock near a point.

    Query: latitude, longitude, radius (metres, default DEFAULT_SEARCH_RADIUS_M),
    sort_by (distance | rating | price_low | price_high), cylinder_size.
    """
    try:
        results = geolocation_service.find_nearby_sellers(
            request.args.get("latitude"),
            request.args.get("longitude"),
            radius_m=request.args.get("radius"),
            sort_by=request.args.get("sort_by", "distance"),
            cylinder_size=request.args.get("cylinder_size"),
        )
        return jsonify({"sellers": [r.to_dict() for r in results], "count": len(results)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to search sellers")


@buyer_bp.get("/sellers/<int:seller_id>")
@require_auth
@require_role("buyer", "admin")
def seller_detail_route(seller_id: int):
    try:
        seller = db.session.get(Seller, seller_id)
        if seller is None or seller.seller_status != "approved" or not seller.is_active:
            raise NotFoundError("Seller not found")

        inventories = [inv for inv in inventory_service.list_seller_inventory(seller.id) if inv.is_active]
        warehouses = {w.id: w for w in db.session.query(Warehouse).filter_by(seller_id=seller.id, is_active=True)}
        return jsonify({
            "seller": {
                "id": seller.id,
                "business_name": seller.business_name,
                "rating": {"average": seller.rating_average, "count": seller.rating_count},
            },
            "warehouses": [w.to_dict() for w in warehouses.values()],
            "inventory": [inv.to_dict() for inv in inventories if inv.warehouse_id in warehouses],
            "ratings": [r.to_dict() for r in rating_service.list_seller_ratings(seller.id, limit=20)],
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load seller")


@buyer_bp.post("/quote")
@require_auth
@require_role("buyer")
def quote_route():
    try:
        return jsonify({"quote": order_service.quote_order(request.get_json(silent=True), g.current_user)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to price order")


# =============================================================================
# Orders
# =============================================================================

@buyer_bp.post("/orders")
@require_auth
@require_role("buyer")
def create_order_route():
    """
    Place an order (new, refill, return or supplier_change).

    Prices are computed server-side from the seller's inventory; any price
    fields in the body are ignored.
    """
    try:
        order = order_service.create_order(g.current_user, request.get_json(silent=True))
        return jsonify({"order": order.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create order")


@buyer_bp.get("/orders")
@require_auth
@require_role("buyer")
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


@buyer_bp.get("/orders/<int:order_id>")
@require_auth
@require_role("buyer")
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


@buyer_bp.post("/orders/<int:order_id>/confirm")
@require_auth
@require_role("buyer")
def confirm_delivery_route(order_id: int):
    """
    Confirm receipt of a delivered order.

    Generates the invoice; if that fails the order stays delivered and the
    response is 502 so the buyer can retry.
    """
    try:
        data = request.get_json(silent=True) or {}
        order_service.get_order_for_actor(order_id, g.current_user)
        order = apply_transition(
            order_id, "confirm_delivery", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to confirm delivery")


@buyer_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_role("buyer")
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


@buyer_bp.post("/orders/<int:order_id>/rate")
@require_auth
@require_role("buyer")
def rate_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        rating = rating_service.rate_order(g.current_user, order_id, data.get("stars"), data.get("description"))
        return jsonify({"rating": rating.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to rate order")


# =============================================================================
# Cylinders and addresses
# =============================================================================

@buyer_bp.get("/cylinders")
@require_auth
@require_role("buyer")
def list_cylinders_route():
    cylinders = order_service.list_buyer_cylinders(g.current_user)
    return jsonify({"cylinders": [c.to_dict() for c in cylinders], "count": len(cylinders)}), 200


@buyer_bp.put("/cylinders/<int:cylinder_id>")
@require_auth
@require_role("buyer")
def rename_cylinder_route(cylinder_id: int):
    """Body: {"custom_name": "Kitchen"}"""
    try:
        cylinder = buyer_service.rename_cylinder(g.current_user, cylinder_id, request.get_json(silent=True))
        return jsonify({"cylinder": cylinder.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to rename cylinder")


@buyer_bp.post("/addresses")
@require_auth
@require_role("buyer")
def add_address_route():
    try:
        address = buyer_service.add_address(g.current_user, request.get_json(silent=True))
        return jsonify({"address": address.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to save address")


@buyer_bp.delete("/addresses/<int:address_id>")
@require_auth
@require_role("buyer")
def remove_address_route(address_id: int):
    try:
        buyer_service.remove_address(g.current_user, address_id)
        return jsonify({"message": "Address removed"}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to remove address")
