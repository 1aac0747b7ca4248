# Overview: Pure pricing calculator for orders; no database access.

"""
Order pricing.

    add_ons_total = sum(price * quantity)
    subtotal      = unit_price * quantity + add_ons_total
    grand_total   = subtotal + security + delivery + urgent_fee

All amounts are integer minor units. Invalid input raises ValidationError;
the calculator never clamps a negative value to zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..constants import CYLINDER_SIZES
from ..errors import ValidationError


@dataclass(frozen=True)
class PricingInput:
    unit_price_cents: int
    quantity: int
    security_charges_cents: int = 0
    delivery_charges_cents: int = 0
    urgent_delivery_fee_cents: int = 0
    add_ons: list = field(default_factory=list)


@dataclass(frozen=True)
class PricingResult:
    add_ons_total_cents: int
    subtotal_cents: int
    grand_total_cents: int

    def to_dict(self) -> dict:
        return {
            "add_ons_total_cents": self.add_ons_total_cents,
            "subtotal_cents": self.subtotal_cents,
            "grand_total_cents": self.grand_total_cents,
        }


def _non_negative(value, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", {name: "not an integer"})
    if value < 0:
        raise ValidationError(f"{name} must be >= 0", {name: "negative"})
    return value


def calculate_pricing(data: PricingInput) -> PricingResult:
    quantity = _non_negative(data.quantity, "quantity")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1", {"quantity": "too small"})

    unit_price = _non_negative(data.unit_price_cents, "unit_price_cents")
    security = _non_negative(data.security_charges_cents, "security_charges_cents")
    delivery = _non_negative(data.delivery_charges_cents, "delivery_charges_cents")
    urgent = _non_negative(data.urgent_delivery_fee_cents, "urgent_delivery_fee_cents")

    add_ons_total = 0
    for index, add_on in enumerate(data.add_ons or []):
        price = _non_negative(add_on.get("price_cents"), f"add_ons[{index}].price_cents")
        add_on_qty = _non_negative(add_on.get("quantity", 1), f"add_ons[{index}].quantity")
        add_ons_total += price * add_on_qty

    subtotal = unit_price * quantity + add_ons_total
    grand_total = subtotal + security + delivery + urgent

    return PricingResult(
        add_ons_total_cents=add_ons_total,
        subtotal_cents=subtotal,
        grand_total_cents=grand_total,
    )


def gas_price_cents(cylinder_size: str, price_per_kg_cents: int) -> int:
    """Price of the gas in one cylinder, rounded half-up to the minor unit."""
    kg = CYLINDER_SIZES[cylinder_size]
    return int((kg * Decimal(price_per_kg_cents)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def delivery_charges(is_urgent: bool) -> tuple[int, int]:
    """(delivery_charges_cents, urgent_delivery_fee_cents) from app config."""
    cfg = current_app.config
    if is_urgent:
        return cfg["URGENT_DELIVERY_CHARGE_CENTS"], cfg["URGENT_DELIVERY_FEE_CENTS"]
    return cfg["STANDARD_DELIVERY_CHARGE_CENTS"], 0
