# Overview: Service-layer operations for invoices; allocates invoice numbers and URLs on completion.

"""
Invoice Generator

Completion of an order requires an invoice. The generator runs inside the
completing transaction; if it fails, ExternalServiceError aborts the
transition and the order stays `delivered`.

The default LocalInvoiceGenerator only allocates a number and a URL under
INVOICE_BASE_URL. Rendering the document is left to whatever serves that
URL. Another generator can be installed in app.extensions["invoice_generator"].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import ExternalServiceError
from ..models import Order
from ..time_utils import utcnow
from .document_service import next_invoice_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceRecord:
    number: str
    url: str
    generated_at: datetime


class LocalInvoiceGenerator:
    def generate(self, order: Order) -> InvoiceRecord:
        number = next_invoice_number()
        base_url = current_app.config["INVOICE_BASE_URL"].rstrip("/")
        return InvoiceRecord(
            number=number,
            url=f"{base_url}/{number}.pdf",
            generated_at=utcnow(),
        )


def get_invoice_generator():
    generator = current_app.extensions.get("invoice_generator")
    if generator is None:
        generator = LocalInvoiceGenerator()
        current_app.extensions["invoice_generator"] = generator
    return generator


def generate_invoice(order: Order) -> InvoiceRecord:
    """Run the configured generator; any failure becomes ExternalServiceError."""
    try:
        record = get_invoice_generator().generate(order)
    except ExternalServiceError:
        raise
    except Exception as exc:
        logger.exception("Invoice generation failed for order %s", order.order_number)
        raise ExternalServiceError(
            "Invoice generation failed",
            {"order_number": order.order_number, "reason": type(exc).__name__},
        )
    if not record or not record.number:
        raise ExternalServiceError("Invoice generator returned no invoice", {"order_number": order.order_number})
    return record
