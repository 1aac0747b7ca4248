# Overview: Central order state machine; the only code path that changes Order.status.

"""
Order State Machine

Every status change goes through apply_transition(). The TRANSITIONS table
is the single source of truth for which event moves an order from which
status to which status, and which roles may trigger it.

ORDER OF CHECKS:
0. Version: a stale expected_version is a ConflictError
1. Actor: role may trigger the event and owns the order (PermissionDeniedError)
2. State: the event is legal from the current status (InvalidTransitionError)
3. Payload: the handler validates its input (ValidationError) before any write

WRITE: one transaction containing
- a conditional UPDATE on (id, status, version_id); zero rows means another
  request won the race (ConflictError) and nothing is written
- the handler's critical side effects (weights, cylinders, invoice, restock, ledger)
- exactly one OrderStatusHistory row

AFTER COMMIT: notifications and realtime broadcasts. Their failures are
logged and never undo the transition.

CANCELLATION POLICY:
- before dispatch (pending .. pickup_ready, refill_*, return_requested):
  -> cancelled; reserved stock and add-ons go back, a completed payment becomes refunded
- a refill cancelled while the cylinder is at the store is settled as a
  return: the seller keeps the cylinder and owes the deposit
- after dispatch (in_transit, delivered): -> return_pickup; the driver keeps
  custody until confirm_return brings the cylinders and add-ons back
- return_pickup cannot be cancelled
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db
from ..errors import (
    ConflictError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..models import Cylinder, CylinderVerification, Driver, Order, OrderStatusHistory
from ..realtime import get_broadcaster, order_room, safe_emit
from ..time_utils import to_utc_z, utcnow
from ..validation import validate_quantity, validate_weight_payload
from . import inventory_service, notification_service, payment_service
from .concurrency import is_lock_contention
from .document_service import generate_qr_token
from .invoice_service import generate_invoice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemActor:
    """Actor for scheduled and automatic transitions."""
    id: Any = None
    role: str = "system"


SYSTEM = SystemActor()


@dataclass(frozen=True)
class Transition:
    event: str
    sources: frozenset
    target: str
    roles: frozenset


def _t(event: str, sources, target: str, roles) -> Transition:
    return Transition(event, frozenset(sources), target, frozenset(roles))


DISPATCH_ROLES = {"admin", "system", "seller"}
CANCEL_ROLES = {"buyer", "seller", "admin"}

TRANSITIONS = (
    _t("assign_driver", {"pending"}, "assigned", DISPATCH_ROLES),
    _t("assign_driver", {"refill_requested"}, "refill_pickup", DISPATCH_ROLES),
    _t("assign_driver", {"return_requested"}, "return_pickup", DISPATCH_ROLES),
    _t("accept", {"assigned"}, "pickup_ready", {"driver"}),
    _t("scan_pickup", {"pickup_ready", "refill_ready"}, "in_transit", {"driver"}),
    _t("scan_delivery", {"in_transit"}, "delivered", {"driver"}),
    _t("confirm_delivery", {"delivered"}, "completed", {"buyer", "system"}),
    _t("drop_at_store", {"refill_pickup"}, "refill_in_store", {"driver"}),
    _t("mark_refilled", {"refill_in_store"}, "refill_ready", {"seller"}),
    _t("confirm_return", {"return_pickup"}, "returned", {"driver"}),
    _t(
        "cancel",
        {
            "pending", "assigned", "pickup_ready",
            "refill_requested", "refill_pickup", "refill_in_store", "refill_ready",
            "return_requested",
        },
        "cancelled",
        CANCEL_ROLES,
    ),
    _t("cancel", {"in_transit", "delivered"}, "return_pickup", CANCEL_ROLES),
)

EVENTS = frozenset(t.event for t in TRANSITIONS)

# Orders that keep a driver occupied
DRIVER_ACTIVE_STATUSES = ("assigned", "pickup_ready", "in_transit", "refill_pickup", "return_pickup")


def find_transition(event: str, status: str) -> Transition | None:
    for transition in TRANSITIONS:
        if transition.event == event and status in transition.sources:
            return transition
    return None


def _owns(order: Order, actor) -> bool:
    if actor.role in ("admin", "system"):
        return True
    if actor.role == "buyer":
        return order.buyer_id == actor.id
    if actor.role == "seller":
        return order.seller_id == actor.id
    if actor.role == "driver":
        return order.driver_id is not None and order.driver_id == actor.id
    return False


def _check_actor(order: Order, actor, event: str) -> None:
    roles = set()
    for transition in TRANSITIONS:
        if transition.event == event:
            roles |= transition.roles
    if actor.role not in roles:
        raise PermissionDeniedError(
            f"A {actor.role} cannot {event.replace('_', ' ')} an order",
            {"event": event, "role": actor.role},
        )
    if not _owns(order, actor):
        raise PermissionDeniedError("Order is not assigned to you", {"order_id": order.id})


def allowed_events(order: Order, actor) -> list[str]:
    """Events this actor could trigger right now (for clients rendering actions)."""
    if not _owns(order, actor):
        return []
    return sorted({
        t.event for t in TRANSITIONS
        if order.status in t.sources and actor.role in t.roles
    })


@dataclass
class TransitionContext:
    order: Order
    actor: Any
    transition: Transition
    payload: dict
    now: datetime
    broadcaster: Any = None


@dataclass
class TransitionPlan:
    # Column writes folded into the conditional UPDATE
    values: dict = field(default_factory=dict)
    # Run after the UPDATE matched, inside the same transaction
    in_transaction: list[Callable[[], None]] = field(default_factory=list)
    # Run after commit with the refreshed order; failures are logged only
    after_commit: list[Callable[[Order], None]] = field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================

def _require_qr(payload: dict, expected: str | None, field_name: str = "qr_code") -> None:
    scanned = str(payload.get(field_name) or "").strip()
    if not scanned:
        raise ValidationError(f"{field_name} is required", {field_name: "required"})
    if not expected or scanned != expected:
        raise ValidationError("Scanned QR code does not match this order", {field_name: "mismatch"})


def _order_cylinders(order: Order) -> list[Cylinder]:
    cylinders = (
        db.session.query(Cylinder)
        .filter(Cylinder.origin_order_id == order.id)
        .order_by(Cylinder.id)
        .all()
    )
    if order.existing_cylinder_id and all(c.id != order.existing_cylinder_id for c in cylinders):
        existing = db.session.get(Cylinder, order.existing_cylinder_id)
        if existing is not None:
            cylinders.append(existing)
    return cylinders


def _release_driver(driver_id: int | None, order_id: int) -> None:
    """Mark the driver available unless another order still occupies them."""
    if driver_id is None:
        return
    driver = db.session.get(Driver, driver_id)
    if driver is None or driver.driver_status != "busy":
        return
    other = (
        db.session.query(Order.id)
        .filter(
            Order.driver_id == driver_id,
            Order.id != order_id,
            Order.status.in_(DRIVER_ACTIVE_STATUSES),
        )
        .first()
    )
    if other is None:
        driver.driver_status = "available"


def _mark_busy(driver_id: int | None) -> None:
    if driver_id is None:
        return
    driver = db.session.get(Driver, driver_id)
    if driver is not None and driver.driver_status != "offline":
        driver.driver_status = "busy"


def _move_to_warehouse(cylinder: Cylinder, order: Order, status: str) -> None:
    warehouse = order.warehouse
    cylinder.status = status
    cylinder.warehouse_id = order.warehouse_id
    cylinder.current_latitude = warehouse.latitude if warehouse else None
    cylinder.current_longitude = warehouse.longitude if warehouse else None


def _restock(order: Order, quantity: int) -> None:
    if quantity <= 0:
        return
    inventory = inventory_service.inventory_for_warehouse(order.warehouse_id)
    if inventory is None:
        logger.warning("No inventory for warehouse %s; cannot restock order %s", order.warehouse_id, order.order_number)
        return
    inventory_service.release_stock(inventory.id, order.cylinder_size, quantity)


def _refund_values(order: Order) -> dict:
    if order.payment_status == "completed":
        return {"payment_status": "refunded"}
    return {}


# =============================================================================
# Handlers (validate, then describe the writes)
# =============================================================================

def _assign_driver(ctx: TransitionContext) -> TransitionPlan:
    if ctx.payload.get("driver_id") is None:
        raise ValidationError("driver_id is required", {"driver_id": "required"})
    driver_id = validate_quantity(ctx.payload["driver_id"], "driver_id")
    driver = db.session.get(Driver, driver_id)
    if driver is None:
        raise NotFoundError("Driver not found")
    if not driver.is_active or driver.driver_status == "offline":
        raise ValidationError("Driver is not available", {"driver_id": driver.driver_status})

    plan = TransitionPlan(values={"driver_id": driver.id})
    plan.in_transaction.append(lambda: _mark_busy(driver.id))
    return plan


def _accept(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    entries = validate_weight_payload(ctx.payload.get("cylinders"), order.quantity)

    serials = [e["serial_number"] for e in entries]
    existing = {
        c.serial_number: c
        for c in db.session.query(Cylinder).filter(Cylinder.serial_number.in_(serials)).all()
    }
    for serial, cylinder in existing.items():
        # Only cylinders back in this seller's warehouse may be issued again
        if cylinder.status != "returned" or cylinder.seller_id != order.seller_id:
            raise ConflictError(
                f"Cylinder {serial} is already in circulation",
                {"serial_number": serial, "status": cylinder.status},
            )

    inventory = inventory_service.inventory_for_warehouse(order.warehouse_id)
    stock = inventory.stock_for(order.cylinder_size) if inventory else None
    security_fee = stock.security_price_cents if stock else 0

    plan = TransitionPlan(values={"qr_code": generate_qr_token("ORD")})
    if ctx.payload.get("notes"):
        plan.values["driver_notes"] = str(ctx.payload["notes"]).strip()

    def _persist_weights():
        for entry in entries:
            cylinder = existing.get(entry["serial_number"])
            if cylinder is None:
                cylinder = Cylinder(
                    serial_number=entry["serial_number"],
                    qr_code=generate_qr_token("CYL"),
                )
                db.session.add(cylinder)
            cylinder.cylinder_size = order.cylinder_size
            cylinder.seller_id = order.seller_id
            cylinder.buyer_id = None
            cylinder.origin_order_id = order.id
            cylinder.tare_weight = entry["tare_weight"]
            cylinder.net_weight = entry["net_weight"]
            cylinder.gross_weight = entry["gross_weight"]
            cylinder.weight_difference = entry["weight_difference"]
            cylinder.photo_url = entry["photo_url"]
            cylinder.security_fee_cents = security_fee
            _move_to_warehouse(cylinder, order, "active")
            db.session.flush()

            db.session.add(CylinderVerification(
                order_id=order.id,
                cylinder_id=cylinder.id,
                serial_number=entry["serial_number"],
                tare_weight=entry["tare_weight"],
                net_weight=entry["net_weight"],
                gross_weight=entry["gross_weight"],
                weight_difference=entry["weight_difference"],
                photo_url=entry["photo_url"],
                verified_by_user_id=ctx.actor.id,
                verified_at=ctx.now,
            ))

    plan.in_transaction.append(_persist_weights)
    return plan


def _scan_pickup(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    _require_qr(ctx.payload, order.qr_code)
    plan = TransitionPlan(values={"qr_code_scanned_at": ctx.now})
    if order.status == "refill_ready":
        plan.in_transaction.append(lambda: _mark_busy(order.driver_id))

    def _start_tracking(fresh: Order):
        safe_emit(ctx.broadcaster, order_room(fresh.order_number), "tracking_started", {
            "order_id": fresh.id,
            "order_number": fresh.order_number,
            "driver_id": fresh.driver_id,
            "started_at": to_utc_z(fresh.qr_code_scanned_at),
        })

    plan.after_commit.append(_start_tracking)
    return plan


def _scan_delivery(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    _require_qr(ctx.payload, order.qr_code)
    plan = TransitionPlan(values={
        "delivery_scanned_at": ctx.now,
        "actual_delivery_time": ctx.now,
    })

    def _hand_over():
        for cylinder in _order_cylinders(order):
            cylinder.buyer_id = order.buyer_id
            cylinder.status = "active"
            cylinder.current_latitude = order.delivery_latitude
            cylinder.current_longitude = order.delivery_longitude

    plan.in_transaction.append(_hand_over)
    return plan


def _confirm_delivery(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    # Blocking: an invoice failure keeps the order delivered
    invoice = generate_invoice(order)
    plan = TransitionPlan(values={
        "invoice_number": invoice.number,
        "invoice_url": invoice.url,
        "invoice_generated_at": invoice.generated_at,
        "completed_at": ctx.now,
    })
    if order.payment_method == "cod" and order.payment_status == "pending":
        plan.values["payment_status"] = "completed"
        plan.values["paid_at"] = ctx.now

    plan.in_transaction.append(lambda: _release_driver(order.driver_id, order.id))
    plan.in_transaction.append(lambda: payment_service.record_completed(order))

    def _send_invoice(fresh: Order):
        notification_service.send(
            fresh.buyer_id,
            "Invoice ready",
            f"Invoice {fresh.invoice_number} for order {fresh.order_number} is available.",
            "invoice_generated",
            order_id=fresh.id,
            data={"invoice_number": fresh.invoice_number, "invoice_url": fresh.invoice_url},
            broadcaster=ctx.broadcaster,
        )

    plan.after_commit.append(_send_invoice)
    return plan


def _existing_cylinder(order: Order) -> Cylinder:
    cylinder = db.session.get(Cylinder, order.existing_cylinder_id) if order.existing_cylinder_id else None
    if cylinder is None:
        raise ValidationError("Order has no cylinder attached", {"existing_cylinder_id": "required"})
    return cylinder


def _drop_at_store(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    cylinder = _existing_cylinder(order)
    _require_qr(ctx.payload, cylinder.qr_code, "cylinder_qr_code")

    # New order QR for the return leg to the buyer
    plan = TransitionPlan(values={"qr_code": generate_qr_token("ORD"), "qr_code_scanned_at": None})

    def _check_in():
        _move_to_warehouse(cylinder, order, "in_refill")
        _release_driver(order.driver_id, order.id)

    plan.in_transaction.append(_check_in)
    return plan


def _mark_refilled(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    cylinder = _existing_cylinder(order)
    weights = None
    if ctx.payload.get("tare_weight") is not None or ctx.payload.get("net_weight") is not None:
        entry = dict(ctx.payload)
        entry["serial_number"] = cylinder.serial_number
        weights = validate_weight_payload([entry], 1)[0]

    plan = TransitionPlan()
    if ctx.payload.get("notes"):
        plan.values["seller_notes"] = str(ctx.payload["notes"]).strip()

    def _refilled():
        cylinder.status = "active"
        if weights is None:
            return
        cylinder.tare_weight = weights["tare_weight"]
        cylinder.net_weight = weights["net_weight"]
        cylinder.gross_weight = weights["gross_weight"]
        cylinder.weight_difference = weights["weight_difference"]
        db.session.add(CylinderVerification(
            order_id=order.id,
            cylinder_id=cylinder.id,
            serial_number=cylinder.serial_number,
            tare_weight=weights["tare_weight"],
            net_weight=weights["net_weight"],
            gross_weight=weights["gross_weight"],
            weight_difference=weights["weight_difference"],
            photo_url=weights["photo_url"],
            verified_by_user_id=ctx.actor.id,
            verified_at=ctx.now,
        ))

    plan.in_transaction.append(_refilled)
    return plan


def _confirm_return(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    if order.order_type == "return":
        cylinder = _existing_cylinder(order)
        _require_qr(ctx.payload, cylinder.qr_code, "cylinder_qr_code")
        cylinders = [cylinder]
        values = {}
    else:
        # Cancelled after dispatch: the driver brings the order's cylinders back
        _require_qr(ctx.payload, order.qr_code)
        cylinders = _order_cylinders(order)
        values = {"stock_reserved": False, **_refund_values(order)}
        if order.order_type == "refill" and order.existing_cylinder_id:
            values["security_refund_cents"] = _existing_cylinder(order).security_fee_cents

    restock_quantity = len(cylinders) or (order.quantity if order.stock_reserved else 0)
    plan = TransitionPlan(values=values)

    def _receive():
        for cyl in cylinders:
            cyl.buyer_id = None
            _move_to_warehouse(cyl, order, "returned")
        _restock(order, restock_quantity)
        if order.order_type == "return":
            payment_service.record_returned(order)
        else:
            inventory_service.release_add_ons(order.add_ons)
            payment_service.record_cancelled(
                order,
                refund_payment=order.payment_status == "completed",
                deposit_refund_cents=values.get("security_refund_cents", 0),
                driver_trip=True,
            )
        _release_driver(order.driver_id, order.id)

    plan.in_transaction.append(_receive)
    return plan


def _cancel(ctx: TransitionContext) -> TransitionPlan:
    order = ctx.order
    reason = str(ctx.payload.get("reason") or "").strip()[:255] or None
    values = {"cancelled_at": ctx.now, "cancellation_reason": reason}

    if ctx.transition.target == "return_pickup":
        # Custody stays with the driver until confirm_return
        return TransitionPlan(values=values)

    values["stock_reserved"] = False
    values.update(_refund_values(order))

    settle_as_return = order.order_type == "refill" and order.status in ("refill_in_store", "refill_ready")
    cylinder = None
    if order.order_type in ("refill", "return"):
        cylinder = _existing_cylinder(order)
        if settle_as_return:
            values["security_refund_cents"] = cylinder.security_fee_cents

    def _unwind():
        if order.stock_reserved:
            _restock(order, order.quantity)
        if order.order_type in ("new", "supplier_change"):
            # Cylinders weighed at acceptance never left the warehouse
            for cyl in _order_cylinders(order):
                cyl.buyer_id = None
                _move_to_warehouse(cyl, order, "returned")
        elif settle_as_return:
            cylinder.buyer_id = None
            _move_to_warehouse(cylinder, order, "returned")
            _restock(order, 1)
        elif order.order_type == "refill":
            cylinder.status = "empty"
        inventory_service.release_add_ons(order.add_ons)
        payment_service.record_cancelled(
            order,
            refund_payment=order.payment_status == "completed",
            deposit_refund_cents=values.get("security_refund_cents", 0),
        )
        _release_driver(order.driver_id, order.id)

    plan = TransitionPlan(values=values)
    plan.in_transaction.append(_unwind)
    return plan


HANDLERS = {
    "assign_driver": _assign_driver,
    "accept": _accept,
    "scan_pickup": _scan_pickup,
    "scan_delivery": _scan_delivery,
    "confirm_delivery": _confirm_delivery,
    "drop_at_store": _drop_at_store,
    "mark_refilled": _mark_refilled,
    "confirm_return": _confirm_return,
    "cancel": _cancel,
}


# =============================================================================
# Entry point
# =============================================================================

def _compare_and_swap(ctx: TransitionContext, plan: TransitionPlan, from_status: str, observed_version: int) -> None:
    values = dict(plan.values)
    values["status"] = ctx.transition.target
    values["version_id"] = Order.version_id + 1
    values["updated_at"] = ctx.now

    result = db.session.execute(
        update(Order)
        .where(
            Order.id == ctx.order.id,
            Order.status == from_status,
            Order.version_id == observed_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            "Order was modified by another request",
            {"order_id": ctx.order.id, "expected_status": from_status, "expected_version": observed_version},
        )


def apply_transition(
    order_id: int,
    event: str,
    actor,
    payload: dict | None = None,
    expected_version: int | None = None,
    broadcaster=None,
) -> Order:
    """
    Apply one event to one order and return the refreshed order.

    `expected_version` is the version_id the caller last saw; a mismatch
    raises ConflictError before anything is written.
    """
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if event not in EVENTS:
        raise ValidationError(f"Unknown event: {event}", {"event": "unknown"})
    if broadcaster is None:
        broadcaster = get_broadcaster()

    order = db.session.get(Order, order_id, populate_existing=True)
    if order is None:
        raise NotFoundError("Order not found")

    if expected_version is not None:
        expected = validate_quantity(expected_version, "expected_version")
        if expected != order.version_id:
            raise ConflictError(
                "Order was modified by another request",
                {"expected_version": expected, "current_version": order.version_id},
            )

    _check_actor(order, actor, event)

    transition = find_transition(event, order.status)
    if transition is None:
        raise InvalidTransitionError(
            f"Cannot {event.replace('_', ' ')} an order that is {order.status}",
            {"status": order.status, "event": event},
        )

    from_status = order.status
    observed_version = order.version_id
    ctx = TransitionContext(
        order=order,
        actor=actor,
        transition=transition,
        payload=payload,
        now=utcnow(),
        broadcaster=broadcaster,
    )

    try:
        plan = HANDLERS[event](ctx)
        _compare_and_swap(ctx, plan, from_status, observed_version)
        for step in plan.in_transaction:
            step()
        notes = payload.get("notes") or payload.get("reason")
        db.session.add(OrderStatusHistory(
            order_id=order.id,
            from_status=from_status,
            status=transition.target,
            event=event,
            updated_by_user_id=actor.id,
            notes=str(notes).strip()[:255] if notes else None,
            created_at=ctx.now,
        ))
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Transition %s on order %s hit a uniqueness conflict: %s", event, order_id, exc.orig)
        raise ConflictError("Duplicate value while updating order", {"order_id": order_id})
    except OperationalError as exc:
        db.session.rollback()
        if is_lock_contention(exc):
            raise ConflictError("Order is being modified by another request", {"order_id": order_id})
        raise
    except Exception:
        db.session.rollback()
        raise

    order = db.session.get(Order, order_id, populate_existing=True)
    logger.info(
        "Order %s: %s -> %s (%s by %s %s)",
        order.order_number, from_status, order.status, event, actor.role, actor.id,
    )

    _run_after_commit(order, from_status, plan, broadcaster)

    if event == "scan_delivery" and current_app.config.get("ORDER_COMPLETION_POLICY") == "on_delivery":
        try:
            order = apply_transition(order.id, "confirm_delivery", SYSTEM, broadcaster=broadcaster)
        except (ExternalServiceError, ConflictError, InvalidTransitionError) as exc:
            logger.warning("Automatic completion of %s failed: %s", order.order_number, exc)
            order = db.session.get(Order, order_id, populate_existing=True)

    return order


def _run_after_commit(order: Order, from_status: str, plan: TransitionPlan, broadcaster) -> None:
    steps = [lambda fresh: notification_service.notify_status_change(fresh, from_status, broadcaster)]
    steps.extend(plan.after_commit)
    for step in steps:
        try:
            step(order)
        except Exception:
            db.session.rollback()
            logger.exception("Post-transition side effect failed for order %s", order.order_number)
