# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/marketplace/routes/admin.py
"""
Admin API routes

Seller approval, driver onboarding, order oversight, payment updates and
the platform dashboard.
All routes require the admin role.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response, internal_error
from ..realtime import get_broadcaster
from ..services import admin_service, dashboard_service, order_service, payment_service
from ..services.order_state_machine import allowed_events, apply_transition


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# Sellers and drivers
# =============================================================================

@admin_bp.get("/sellers")
@require_auth
@require_role("admin")
def list_sellers_route():
    try:
        sellers = admin_service.list_sellers(request.args.get("status"))
        return jsonify({"sellers": [s.to_dict() for s in sellers], "count": len(sellers)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list sellers")


@admin_bp.post("/sellers/<int:seller_id>/status")
@require_auth
@require_role("admin")
def set_seller_status_route(seller_id: int):
    """
    Approve or reject a seller.

    Body: {"status": "approved" | "rejected", "reason": "..."}; a reason is
    required for rejections.
    """
    try:
        data = request.get_json(silent=True) or {}
        seller = admin_service.set_seller_status(
            seller_id,
            data.get("status"),
            reason=data.get("reason"),
            broadcaster=get_broadcaster(),
        )
        return jsonify({"seller": seller.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update seller status")


@admin_bp.get("/drivers")
@require_auth
@require_role("admin")
def list_drivers_route():
    try:
        drivers = admin_service.list_drivers(request.args.get("status"))
        return jsonify({"drivers": [d.to_dict() for d in drivers], "count": len(drivers)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list drivers")


@admin_bp.post("/drivers")
@require_auth
@require_role("admin")
def create_driver_route():
    try:
        driver = admin_service.create_driver(request.get_json(silent=True) or {})
        return jsonify({"driver": driver.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create driver")


@admin_bp.patch("/users/<int:user_id>/active")
@require_auth
@require_role("admin")
def set_user_active_route(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if user_id == g.current_user.id:
            return jsonify({"error": "Cannot deactivate yourself", "kind": "validation_error"}), 400
        user = admin_service.set_user_active(user_id, data.get("is_active"))
        return jsonify({"user": user.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update user")


# =============================================================================
# Orders
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_role("admin")
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


@admin_bp.get("/orders/<int:order_id>")
@require_auth
@require_role("admin")
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


@admin_bp.post("/orders/<int:order_id>/assign")
@require_auth
@require_role("admin")
def assign_driver_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = apply_transition(
            order_id, "assign_driver", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to assign driver")


@admin_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_role("admin")
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = apply_transition(
            order_id, "cancel", g.current_user, data,
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel order")


@admin_bp.post("/orders/<int:order_id>/payment")
@require_auth
@require_role("admin")
def record_payment_route(order_id: int):
    """Record a gateway result. Body: {"payment_status": "completed" | "failed", "transaction_id": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        order = admin_service.record_payment(
            order_id,
            data.get("payment_status"),
            transaction_id=data.get("transaction_id"),
            broadcaster=get_broadcaster(),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record payment")


@admin_bp.post("/orders/auto-complete")
@require_auth
@require_role("admin")
def auto_complete_route():
    """Complete delivered orders past DELIVERY_CONFIRMATION_TIMEOUT_HOURS."""
    try:
        summary = order_service.complete_overdue_deliveries(broadcaster=get_broadcaster())
        return jsonify(summary), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to complete overdue deliveries")


# =============================================================================
# Dashboard and payment timeline
# =============================================================================

@admin_bp.get("/dashboard/widgets")
@require_auth
@require_role("admin")
def dashboard_widgets_route():
    try:
        return jsonify({"widgets": dashboard_service.admin_widgets(g.current_user)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load dashboard")


@admin_bp.get("/payments")
@require_auth
@require_role("admin")
def payment_timeline_route():
    """Query: date_from, date_to, status, type, search, seller_id, page, limit."""
    try:
        return jsonify(payment_service.admin_timeline(request.args)), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load payments")


@admin_bp.post("/payments/<int:entry_id>/clear")
@require_auth
@require_role("admin")
def clear_payment_route(entry_id: int):
    """Body: {"reference_id": "...", "notes": "..."} (both optional)."""
    try:
        entry = payment_service.clear_entry(entry_id, g.current_user, request.get_json(silent=True) or {})
        return jsonify({"payment": entry.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to clear payment")
