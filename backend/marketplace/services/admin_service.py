# Overview: Service-layer operations for admin; seller approval, driver onboarding, payments.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Driver, Order, Seller, User
from ..realtime import ADMIN_ROOM, safe_emit, user_room
from ..time_utils import utcnow
from ..validation import validate_choice
from . import auth_service, notification_service, session_service

logger = logging.getLogger(__name__)


def list_sellers(status: str | None = None) -> list[Seller]:
    query = db.session.query(Seller)
    if status:
        query = query.filter(Seller.seller_status == validate_choice(status, ("pending", "approved", "rejected"), "status"))
    return query.order_by(Seller.id).all()


def list_drivers(status: str | None = None) -> list[Driver]:
    query = db.session.query(Driver)
    if status:
        query = query.filter(Driver.driver_status == validate_choice(status, ("available", "busy", "offline"), "status"))
    return query.order_by(Driver.id).all()


def set_seller_status(seller_id: int, decision: str, reason: str | None = None, broadcaster=None) -> Seller:
    """Approve or reject a seller application and tell the seller live."""
    decision = validate_choice(decision, ("approved", "rejected"), "status")
    seller = db.session.get(Seller, seller_id)
    if seller is None:
        raise NotFoundError("Seller not found")
    if decision == "rejected" and not reason:
        raise ValidationError("A reason is required when rejecting", {"reason": "required"})

    seller.seller_status = decision
    seller.approved_at = utcnow() if decision == "approved" else None
    seller.rejection_reason = reason if decision == "rejected" else None
    db.session.commit()
    logger.info("Seller %s %s", seller.id, decision)

    if decision == "approved":
        title, message, kind = "Application approved", "Your seller account has been approved.", "seller_approved"
    else:
        title, message, kind = "Application rejected", f"Your seller application was rejected: {reason}", "seller_rejected"
    notification_service.send(seller.id, title, message, kind, broadcaster=broadcaster)
    payload = {"seller_id": seller.id, "seller_status": seller.seller_status, "reason": seller.rejection_reason}
    safe_emit(broadcaster, user_room("seller", seller.id), "seller_approval_update", payload)
    safe_emit(broadcaster, ADMIN_ROOM, "seller_approval_update", payload)
    return seller


def create_driver(data: dict) -> Driver:
    """Drivers are onboarded by an admin, never self-registered."""
    driver = auth_service.create_user("driver", data)
    zone = data.get("zone")
    if zone:
        from .driver_service import update_zone
        update_zone(driver, zone)
    return driver


def set_user_active(user_id: int, is_active: bool) -> User:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean", {"is_active": "not a boolean"})
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.is_active = is_active
    db.session.commit()
    if not is_active:
        session_service.revoke_all_for_user(user.id, reason="deactivated")
    return user


def record_payment(order_id: int, status: str, transaction_id: str | None = None, broadcaster=None) -> Order:
    """
    Record the outcome of a gateway payment.

    pending -> completed | failed; failed -> completed (retry). Refunds are
    only produced by cancellations and returns.
    """
    status = validate_choice(status, ("completed", "failed"), "payment_status")
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.status in ("cancelled", "returned"):
        raise InvalidTransitionError("Order is closed", {"status": order.status})
    if order.payment_status == "completed":
        raise ConflictError("Payment already completed")
    if order.payment_status == "refunded":
        raise ConflictError("Payment already refunded")

    order.payment_status = status
    if transaction_id:
        order.transaction_id = str(transaction_id).strip()[:128]
    if status == "completed":
        order.paid_at = utcnow()
    db.session.commit()

    if status == "completed":
        notification_service.send(
            order.buyer_id,
            "Payment received",
            f"Payment for order {order.order_number} was successful.",
            "payment_success",
            order_id=order.id,
            broadcaster=broadcaster,
        )
    return order
