# Overview: Enumerations shared by models, services and validation.

from decimal import Decimal

# Cylinder size label -> gas weight in kilograms
CYLINDER_SIZES = {
    "15kg": Decimal("15"),
    "11.8kg": Decimal("11.8"),
    "6kg": Decimal("6"),
    "4.5kg": Decimal("4.5"),
}

ORDER_TYPES = ("new", "refill", "return", "supplier_change")

PAYMENT_METHODS = ("jazzcash", "easypaisa", "card", "cod")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

CYLINDER_STATUSES = ("active", "empty", "in_refill", "returned")

ROLES = ("buyer", "seller", "driver", "admin")
BUYER_TYPES = ("domestic", "commercial")
SELLER_STATUSES = ("pending", "approved", "rejected")
DRIVER_STATUSES = ("available", "busy", "offline")
LANGUAGES = ("english", "urdu")

NOTIFICATION_TYPES = (
    "order_created",
    "order_assigned",
    "order_status_update",
    "order_cancelled",
    "payment_success",
    "seller_approved",
    "seller_rejected",
    "delivery_confirmed",
    "refill_requested",
    "return_requested",
    "invoice_generated",
    "general",
)

# Pakistani mobile numbers: +923XXXXXXXXX, 03XXXXXXXXX or 3XXXXXXXXX
PHONE_PATTERN = r"^(\+92|0)?3[0-9]{9}$"
