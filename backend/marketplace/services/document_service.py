# Overview: Service-layer operations for document numbering (order ids, invoice numbers).

from __future__ import annotations

import secrets

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import epoch_millis, utcnow


def next_sequence_value(name: str) -> int:
    """
    Atomically allocate the next value of a named counter.

    Runs inside the caller's transaction; the row stays write-locked until
    the caller commits, so two transactions cannot receive the same value.
    """
    if not name:
        raise ValueError("sequence name is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.name == name)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(name=name, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(name=name)
        .scalar()
    )
    return current - 1


def next_order_number() -> str:
    """ORD-{epoch millis}-{n}; n is unique across the system."""
    n = next_sequence_value("ORDER")
    return f"ORD-{epoch_millis()}-{n}"


def next_invoice_number() -> str:
    n = next_sequence_value("INVOICE")
    return f"INV-{utcnow():%Y%m}-{n:06d}"


def generate_qr_token(prefix: str = "QR") -> str:
    """Unguessable token printed as a QR code; uniqueness is enforced by the DB."""
    return f"{prefix}-{secrets.token_hex(12).upper()}"
