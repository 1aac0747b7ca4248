# Overview: Flask API routes for driver operations; parses input and returns JSON responses.

# backend/marketplace/routes/driver.py
"""
Driver API routes

Order transitions take the caller's last seen `expected_version` in the
body; a stale version returns 409 without changing anything.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response, internal_error
from ..realtime import get_broadcaster
from ..services import driver_service, order_service
from ..services.order_state_machine import allowed_events, apply_transition


driver_bp = Blueprint("driver", __name__, url_prefix="/api/driver")


def _transition(order_id: int, event: str):
    data = request.get_json(silent=True) or {}
    # Orders of other drivers look absent
    order_service.get_order_for_actor(order_id, g.current_user)
    return apply_transition(
        order_id, event, g.current_user, data,
        expected_version=data.get("expected_version"),
    )


@driver_bp.get("/orders")
@require_auth
@require_role("driver")
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


@driver_bp.get("/orders/<int:order_id>")
@require_auth
@require_role("driver")
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


@driver_bp.post("/orders/<int:order_id>/accept")
@require_auth
@require_role("driver")
def accept_order_route(order_id: int):
    """
    Accept an assigned order after weighing its cylinders.

    Body: cylinders [{serial_number, tare_weight, net_weight, gross_weight?, photo_url?}],
    one entry per ordered cylinder. Issues the order QR code.
    """
    try:
        order = _transition(order_id, "accept")
        return jsonify({"order": order.to_dict(include_history=True)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to accept order")


@driver_bp.post("/orders/<int:order_id>/qr-printed")
@require_auth
@require_role("driver")
def qr_printed_route(order_id: int):
    try:
        order = order_service.mark_qr_printed(order_id, g.current_user)
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record QR print")


@driver_bp.post("/orders/<int:order_id>/pickup")
@require_auth
@require_role("driver")
def scan_pickup_route(order_id: int):
    """Scan the order QR at the warehouse; starts live tracking."""
    try:
        order = _transition(order_id, "scan_pickup")
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record pickup")


@driver_bp.post("/orders/<int:order_id>/deliver")
@require_auth
@require_role("driver")
def scan_delivery_route(order_id: int):
    try:
        order = _transition(order_id, "scan_delivery")
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record delivery")


@driver_bp.post("/orders/<int:order_id>/drop-at-store")
@require_auth
@require_role("driver")
def drop_at_store_route(order_id: int):
    """Refill orders: hand the buyer's empty cylinder to the seller (body: cylinder_qr_code)."""
    try:
        order = _transition(order_id, "drop_at_store")
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record drop at store")


@driver_bp.post("/orders/<int:order_id>/return")
@require_auth
@require_role("driver")
def confirm_return_route(order_id: int):
    try:
        order = _transition(order_id, "confirm_return")
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to confirm return")


# =============================================================================
# Driver state
# =============================================================================

@driver_bp.post("/location")
@require_auth
@require_role("driver")
def update_location_route():
    try:
        data = request.get_json(silent=True) or {}
        tracked = driver_service.update_location(
            g.current_user, data.get("latitude"), data.get("longitude"), broadcaster=get_broadcaster()
        )
        return jsonify({"message": "Location updated", "tracked_orders": tracked}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update location")


@driver_bp.patch("/status")
@require_auth
@require_role("driver")
def set_status_route():
    try:
        data = request.get_json(silent=True) or {}
        driver = driver_service.set_availability(g.current_user, data.get("driver_status"))
        return jsonify({"driver": driver.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update status")


@driver_bp.put("/zone")
@require_auth
@require_role("driver")
def update_zone_route():
    try:
        driver = driver_service.update_zone(g.current_user, request.get_json(silent=True))
        return jsonify({"driver": driver.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update zone")
