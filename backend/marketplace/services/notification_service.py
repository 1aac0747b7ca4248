# Overview: Service-layer operations for notifications; persists rows and pushes them to realtime rooms.

"""
Notification Dispatcher

Notifications are side effects of business operations. They run after the
triggering transaction has committed, and a failure here is logged and
swallowed: it never rolls back the order transition that caused it.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Notification, Order, User
from ..realtime import ADMIN_ROOM, order_room, safe_emit, user_room
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


# status -> (title, message template, notification type)
STATUS_MESSAGES = {
    "assigned": ("Driver assigned", "A driver has been assigned to order {number}.", "order_assigned"),
    "pickup_ready": ("Order verified", "Your cylinders for order {number} have been weighed and are ready for pickup.", "order_status_update"),
    "in_transit": ("On the way", "Order {number} is on the way.", "order_status_update"),
    "delivered": ("Delivered", "Order {number} has been delivered. Please confirm receipt.", "order_status_update"),
    "completed": ("Order completed", "Order {number} is complete. Thank you!", "delivery_confirmed"),
    "cancelled": ("Order cancelled", "Order {number} has been cancelled.", "order_cancelled"),
    "refill_pickup": ("Refill pickup scheduled", "A driver will collect your cylinder for order {number}.", "order_assigned"),
    "refill_in_store": ("Cylinder at store", "Your cylinder for order {number} has reached the store for refilling.", "order_status_update"),
    "refill_ready": ("Refill ready", "Your cylinder for order {number} has been refilled.", "order_status_update"),
    "return_pickup": ("Return pickup scheduled", "A driver will collect the cylinder for order {number}.", "order_status_update"),
    "returned": ("Return received", "The cylinder for order {number} has been returned to the store.", "order_status_update"),
}


def send(
    user_id: int,
    title: str,
    message: str,
    notification_type: str = "general",
    order_id: int | None = None,
    data: dict | None = None,
    broadcaster=None,
) -> Notification | None:
    """Store a notification and push it to the user's room. Returns None on failure."""
    try:
        user = db.session.get(User, user_id)
        if user is None:
            logger.warning("Notification for unknown user %s dropped", user_id)
            return None

        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            order_id=order_id,
            data=data or {},
            created_at=utcnow(),
        )
        db.session.add(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to store notification for user %s", user_id)
        return None

    safe_emit(broadcaster, user_room(user.role, user.id), "new_notification", notification.to_dict())
    return notification


def notify_order_created(order: Order, broadcaster=None) -> None:
    send(
        order.seller_id,
        "New order",
        f"New {order.order_type} order {order.order_number} for {order.quantity} x {order.cylinder_size}.",
        "refill_requested" if order.order_type == "refill" else
        "return_requested" if order.order_type == "return" else "order_created",
        order_id=order.id,
        data={"order_number": order.order_number},
        broadcaster=broadcaster,
    )
    safe_emit(broadcaster, ADMIN_ROOM, "new_order_placed", order.to_dict())


def notify_status_change(order: Order, previous_status: str, broadcaster=None) -> None:
    """Tell every party of the order about its new status."""
    payload = {
        "order_id": order.id,
        "order_number": order.order_number,
        "previous_status": previous_status,
        "status": order.status,
        "version_id": order.version_id,
    }
    safe_emit(broadcaster, order_room(order.order_number), "order_status_update", payload)
    safe_emit(broadcaster, ADMIN_ROOM, "order_status_update", payload)

    template = STATUS_MESSAGES.get(order.status)
    if template is None:
        return
    title, message, notification_type = template
    text = message.format(number=order.order_number)

    recipients = [order.buyer_id, order.seller_id]
    if order.driver_id and order.status in {"assigned", "refill_pickup", "return_pickup", "refill_ready", "cancelled"}:
        recipients.append(order.driver_id)

    for user_id in recipients:
        send(user_id, title, text, notification_type, order_id=order.id, data=payload, broadcaster=broadcaster)


def list_for_user(user_id: int, unread_only: bool = False, limit: int = 50, offset: int = 0) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.id.desc()).offset(offset).limit(limit).all()


def mark_read(user_id: int, notification_ids: list[int] | None = None) -> int:
    """Mark some (or all) of a user's notifications read; returns the count changed."""
    query = db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    if notification_ids:
        query = query.filter(Notification.id.in_(notification_ids))
    changed = query.update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    db.session.commit()
    return changed
