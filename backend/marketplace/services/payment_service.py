# Overview: Service-layer operations for the payment timeline; ledger entries per order and admin clearing.

"""
Payment Timeline

Each order writes ledger entries as it moves through its life:

- placed:     sale (seller, revenue) and security_deposit (seller, liability);
              a return writes the deposit refund (buyer, liability) instead
- completed:  delivery_fee (driver, expense)
- returned:   delivery_fee for the pickup trip, plus refunds when the order
              was cancelled after dispatch
- cancelled:  pending entries become cancelled; a paid order or a refill
              settled as a return adds a refund

The recorders run inside the caller's transaction and never commit.
"""

from __future__ import annotations

import logging
from datetime import datetime, time

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Order, PaymentEntry, User
from ..time_utils import utcnow
from ..validation import validate_choice

logger = logging.getLogger(__name__)

ENTRY_TYPES = ("sale", "security_deposit", "delivery_fee", "refund")
ENTRY_STATUSES = ("pending", "completed", "cancelled")

# Seller timelines only show deposits and driver fees on return orders
SELLER_HIDDEN_TYPES = ("security_deposit", "delivery_fee")


def _entry(order: Order, entry_type: str, amount: int, payee_id, liability: str, cause: str) -> PaymentEntry | None:
    if amount <= 0:
        return None
    entry = PaymentEntry(
        order_id=order.id,
        seller_id=order.seller_id,
        payee_id=payee_id,
        entry_type=entry_type,
        liability_type=liability,
        amount_cents=amount,
        payment_method=order.payment_method,
        status="pending",
        cause=cause,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def record_order_placed(order: Order) -> None:
    if order.order_type == "return":
        _entry(order, "refund", order.security_refund_cents, order.buyer_id, "liability", "Security deposit refund")
        return
    _entry(order, "sale", order.subtotal_cents, order.seller_id, "revenue", "Gas sale")
    _entry(order, "security_deposit", order.security_charges_cents, order.seller_id, "liability", "Security deposit")


def _driver_fee(order: Order) -> None:
    if order.driver_id is None:
        return
    _entry(
        order,
        "delivery_fee",
        order.delivery_charges_cents + order.urgent_delivery_fee_cents,
        order.driver_id,
        "expense",
        "Delivery fee",
    )


def _cancel_pending(order: Order) -> int:
    return (
        db.session.query(PaymentEntry)
        .filter(PaymentEntry.order_id == order.id, PaymentEntry.status == "pending")
        .update({"status": "cancelled"}, synchronize_session="fetch")
    )


def record_completed(order: Order) -> None:
    _driver_fee(order)


def record_cancelled(order: Order, refund_payment: bool, deposit_refund_cents: int = 0, driver_trip: bool = False) -> None:
    """
    Settle the ledger of an order that will not be delivered.

    refund_payment: the buyer had already paid the grand total.
    deposit_refund_cents: deposit owed back when the seller keeps the cylinder.
    driver_trip: a driver carried the order back and is owed the fee.
    """
    cancelled = _cancel_pending(order)
    if refund_payment:
        _entry(order, "refund", order.grand_total_cents, order.buyer_id, "liability", "Order cancelled")
    if deposit_refund_cents:
        _entry(order, "refund", deposit_refund_cents, order.buyer_id, "liability", "Security deposit refund")
    if driver_trip:
        _driver_fee(order)
    logger.debug("Order %s ledger settled (%d pending entries cancelled)", order.order_number, cancelled)


def record_returned(order: Order) -> None:
    """A return order reached the warehouse; the deposit refund stays pending until cleared."""
    _driver_fee(order)


# =============================================================================
# Timelines
# =============================================================================

def _parse_date(value, field_name: str, end_of_day: bool = False) -> datetime:
    try:
        day = datetime.strptime(str(value).strip(), "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"{field_name} must be YYYY-MM-DD", {field_name: "invalid date"})
    if end_of_day:
        return datetime.combine(day.date(), time.max)
    return day


def _filtered(args: dict):
    query = db.session.query(PaymentEntry).join(Order, Order.id == PaymentEntry.order_id)
    if args.get("date_from"):
        query = query.filter(PaymentEntry.created_at >= _parse_date(args["date_from"], "date_from"))
    if args.get("date_to"):
        query = query.filter(PaymentEntry.created_at <= _parse_date(args["date_to"], "date_to", end_of_day=True))
    if args.get("status"):
        query = query.filter(PaymentEntry.status == validate_choice(args["status"], ENTRY_STATUSES, "status"))
    if args.get("type"):
        query = query.filter(PaymentEntry.entry_type == validate_choice(args["type"], ENTRY_TYPES, "type"))
    search = str(args.get("search") or "").strip()
    if search:
        query = query.filter(Order.order_number.ilike(f"%{search}%"))
    return query


def _summary(entries: list[PaymentEntry]) -> dict:
    pending = [e for e in entries if e.status == "pending"]
    cleared = [e for e in entries if e.status == "completed"]
    return {
        "total_pending_cents": sum(e.amount_cents for e in pending),
        "amount_to_drivers_cents": sum(e.amount_cents for e in pending if e.entry_type == "delivery_fee"),
        "amount_to_refund_cents": sum(e.amount_cents for e in pending if e.entry_type == "refund"),
        "cleared_amount_cents": sum(e.amount_cents for e in cleared),
        "pending_count": len(pending),
        "cleared_count": len(cleared),
    }


def _page(args: dict) -> tuple[int, int]:
    try:
        page = max(1, int(args.get("page", 1)))
        limit = min(100, max(1, int(args.get("limit", 20))))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers", {"page": "not an integer"})
    return page, limit


def _timeline(query, args: dict) -> dict:
    entries = query.order_by(PaymentEntry.created_at.desc(), PaymentEntry.id.desc()).all()
    page, limit = _page(args)
    start = (page - 1) * limit
    return {
        "payments": [e.to_dict() for e in entries[start:start + limit]],
        "summary": _summary(entries),
        "pagination": {"page": page, "limit": limit, "total": len(entries)},
    }


def seller_timeline(seller_id: int, args: dict) -> dict:
    """Entries for one seller's orders. Filters: date_from, date_to, status, type, search, page, limit."""
    query = _filtered(args).filter(PaymentEntry.seller_id == seller_id)
    query = query.filter(
        (PaymentEntry.entry_type.notin_(SELLER_HIDDEN_TYPES)) | (Order.order_type == "return")
    )
    return _timeline(query, args)


def admin_timeline(args: dict) -> dict:
    """Every entry; also filterable by seller_id."""
    query = _filtered(args)
    if args.get("seller_id"):
        try:
            seller_id = int(args["seller_id"])
        except (TypeError, ValueError):
            raise ValidationError("seller_id must be an integer", {"seller_id": "not an integer"})
        query = query.filter(PaymentEntry.seller_id == seller_id)
    return _timeline(query, args)


def clear_entry(entry_id: int, admin: User, data: dict) -> PaymentEntry:
    """Mark a pending entry as paid out."""
    entry = db.session.get(PaymentEntry, entry_id)
    if entry is None:
        raise NotFoundError("Payment entry not found")
    if entry.status == "completed":
        raise ConflictError("Payment is already cleared", {"status": entry.status})
    if entry.status == "cancelled":
        raise ConflictError("Payment was cancelled", {"status": entry.status})

    entry.status = "completed"
    entry.processed_by_user_id = admin.id
    entry.processed_at = utcnow()
    if data.get("reference_id"):
        entry.reference_id = str(data["reference_id"]).strip()[:128]
    if data.get("notes"):
        entry.cause = str(data["notes"]).strip()[:255]
    db.session.commit()
    logger.info("Payment entry %s (%s) cleared by admin %s", entry.id, entry.entry_type, admin.id)
    return entry
