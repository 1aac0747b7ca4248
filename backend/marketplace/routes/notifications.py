# Overview: Flask API routes for notification operations; parses input and returns JSON responses.

# backend/marketplace/routes/notifications.py

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..errors import DomainError, ValidationError, error_response, internal_error
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread", "false").lower() == "true"
    limit = max(1, min(request.args.get("limit", 50, type=int), 200))
    offset = max(0, request.args.get("offset", 0, type=int))
    items = notification_service.list_for_user(g.current_user.id, unread_only=unread_only, limit=limit, offset=offset)
    return jsonify({"notifications": [n.to_dict() for n in items], "count": len(items)}), 200


@notifications_bp.post("/read")
@require_auth
def mark_read_route():
    """Body: {"ids": [1, 2]} or {} to mark everything read."""
    try:
        data = request.get_json(silent=True) or {}
        ids = data.get("ids")
        if ids is not None and (not isinstance(ids, list) or not all(isinstance(i, int) for i in ids)):
            raise ValidationError("ids must be a list of integers", {"ids": "invalid"})
        changed = notification_service.mark_read(g.current_user.id, ids)
        return jsonify({"updated": changed}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to mark notifications read")
