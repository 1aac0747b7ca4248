# Overview: Flask API routes for realtime push; server-sent event stream over the room broadcaster.

# backend/marketplace/routes/realtime.py
"""
Realtime stream

GET /api/realtime/stream opens a text/event-stream. Every user joins their
personal room; admins also join admin_notifications; `?orders=ORD-1,ORD-2`
adds the tracking rooms of orders the user can see.

EventSource cannot send headers, so the access token may also be passed
as `?token=`.
"""

import json

from flask import Blueprint, Response, current_app, g, jsonify, request, stream_with_context

from ..decorators import bearer_token
from ..errors import AuthError, DomainError, NotFoundError, error_response, internal_error
from ..extensions import db
from ..models import Order
from ..realtime import ADMIN_ROOM, get_broadcaster, order_room, user_room
from ..services import order_service, session_service


realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")


def _authenticate():
    token = bearer_token() or request.args.get("token")
    if not token:
        raise AuthError("Authentication required")
    context = session_service.validate_session(token)
    if not context:
        raise AuthError("Invalid or expired token")
    g.current_user = context.user
    return context.user


def _rooms_for(user) -> list[str]:
    rooms = [user_room(user.role, user.id)]
    if user.role == "admin":
        rooms.append(ADMIN_ROOM)

    raw = request.args.get("orders", "")
    for number in [n.strip() for n in raw.split(",") if n.strip()]:
        order = db.session.query(Order).filter_by(order_number=number).first()
        if order is None:
            raise NotFoundError("Order not found", {"order_number": number})
        order_service.get_order_for_actor(order.id, user)
        rooms.append(order_room(order.order_number))
    return rooms


@realtime_bp.get("/rooms")
def rooms_route():
    """Rooms the caller would join with the same query; lets clients check access up front."""
    try:
        user = _authenticate()
        return jsonify({"rooms": _rooms_for(user)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to resolve realtime rooms")


@realtime_bp.get("/stream")
def stream_route():
    try:
        user = _authenticate()
        rooms = _rooms_for(user)
        user_id = user.id
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to open realtime stream")

    # Hand the connection back; nothing below touches the database
    db.session.rollback()
    broadcaster = get_broadcaster()
    keepalive = current_app.config["REALTIME_KEEPALIVE_SECONDS"]
    logger = current_app.logger
    subscription = broadcaster.subscribe(rooms)
    logger.info("User %s subscribed to %s", user_id, ", ".join(rooms))

    def generate():
        try:
            yield f"event: ready\ndata: {json.dumps({'rooms': rooms})}\n\n"
            while True:
                event = subscription.get(timeout=keepalive)
                if event is None:
                    if subscription.closed:
                        break
                    yield ": keepalive\n\n"
                    continue
                yield event.to_sse()
        finally:
            broadcaster.unsubscribe(subscription)
            if subscription.dropped:
                logger.warning("Realtime subscriber dropped %d events", subscription.dropped)

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return Response(stream_with_context(generate()), mimetype="text/event-stream", headers=headers)
