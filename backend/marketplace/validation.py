from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .constants import CYLINDER_SIZES, PHONE_PATTERN
from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum money amount: 9,999,999.99 (999,999,999 minor units)
MAX_MONEY_CENTS = 999_999_999

# A filled domestic cylinder never weighs more than this
MAX_CYLINDER_WEIGHT_KG = 100


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_integer(key: str, value: Any) -> int:
    # bool is an int subclass; reject it
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", {key: "required"})
        # Reject scientific notation (e.g., "1e15") and decimals
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer", {key: "not an integer"})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", {key: "not an integer"})
    raise ValidationError(f"{key} must be an integer", {key: "not an integer"})


def _coerce_number(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number", {key: "not a number"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number", {key: "not a number"})
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{key} must be a finite number", {key: "not finite"})
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)

    if isinstance(coltype, Float):
        return _coerce_number(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", {col.key: "not a boolean"})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {col.key: "not a datetime"})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", {col.key: "not a datetime"})

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                {f: "required" for f in missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}", {k: "not writable"})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {k: "required"})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {k: "blank"})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {k: "too long"})

        patch[k] = val

    if "latitude" in patch or "longitude" in patch:
        validate_coordinates(patch.get("latitude", 0.0), patch.get("longitude", 0.0))

    return patch


# =============================================================================
# Field rules
# =============================================================================

def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            {n: "required" for n in missing},
        )


def validate_coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    lat = _coerce_number("latitude", latitude)
    lng = _coerce_number("longitude", longitude)
    if not -90 <= lat <= 90:
        raise ValidationError("latitude must be between -90 and 90", {"latitude": "out of range"})
    if not -180 <= lng <= 180:
        raise ValidationError("longitude must be between -180 and 180", {"longitude": "out of range"})
    return lat, lng


def validate_point(data: Any, field: str = "location") -> tuple[float, float]:
    """Accepts {"latitude": .., "longitude": ..} and returns (lat, lng)."""
    if not isinstance(data, dict):
        raise ValidationError(f"{field} must be an object with latitude and longitude", {field: "required"})
    if data.get("latitude") is None or data.get("longitude") is None:
        raise ValidationError(f"{field} requires latitude and longitude", {field: "incomplete"})
    return validate_coordinates(data["latitude"], data["longitude"])


def validate_cylinder_size(size: Any) -> str:
    if size not in CYLINDER_SIZES:
        raise ValidationError(
            f"cylinder_size must be one of: {', '.join(CYLINDER_SIZES)}",
            {"cylinder_size": "unknown size"},
        )
    return size


def validate_choice(value: Any, choices, field: str) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}", {field: "invalid choice"})
    return value


def validate_quantity(value: Any, field: str = "quantity", minimum: int = 1) -> int:
    qty = _coerce_integer(field, value)
    if qty < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {field: "too small"})
    return qty


def validate_money_cents(value: Any, field: str) -> int:
    cents = _coerce_integer(field, value)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0", {field: "negative"})
    if cents > MAX_MONEY_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_MONEY_CENTS}", {field: "too large"})
    return cents


def validate_phone_number(value: Any) -> str:
    phone = str(value or "").strip()
    if not re.match(PHONE_PATTERN, phone):
        raise ValidationError("Please enter a valid Pakistani phone number", {"phone_number": "invalid format"})
    return phone


def validate_rating_stars(value: Any) -> int:
    stars = _coerce_integer("stars", value)
    if not 1 <= stars <= 5:
        raise ValidationError("stars must be between 1 and 5", {"stars": "out of range"})
    return stars


def _weight(entry: dict, key: str, index: int) -> Decimal:
    raw = entry.get(key)
    field = f"cylinders[{index}].{key}"
    if raw is None or isinstance(raw, bool):
        raise ValidationError(f"{field} is required", {field: "required"})
    try:
        weight = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", {field: "not a number"})
    if not weight.is_finite() or weight <= 0 or weight > MAX_CYLINDER_WEIGHT_KG:
        raise ValidationError(f"{field} must be between 0 and {MAX_CYLINDER_WEIGHT_KG} kg", {field: "out of range"})
    return weight


def validate_weight_payload(payload: Any, expected_count: int) -> list[dict]:
    """
    Validate the driver's weight verification for an accepted order.

    Every delivered cylinder needs a serial number, tare and net weight;
    gross weight defaults to tare + net and must agree with it when given.
    """
    if not payload:
        raise ValidationError("Cylinder weight verification is required", {"cylinders": "required"})
    if not isinstance(payload, list):
        raise ValidationError("cylinders must be a list", {"cylinders": "not a list"})
    if len(payload) != expected_count:
        raise ValidationError(
            f"Expected weights for {expected_count} cylinder(s), got {len(payload)}",
            {"cylinders": "count mismatch"},
        )

    cleaned = []
    seen_serials = set()
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict):
            raise ValidationError(f"cylinders[{index}] must be an object", {f"cylinders[{index}]": "not an object"})
        serial = str(entry.get("serial_number") or "").strip()
        if not serial:
            field = f"cylinders[{index}].serial_number"
            raise ValidationError(f"{field} is required", {field: "required"})
        if serial in seen_serials:
            field = f"cylinders[{index}].serial_number"
            raise ValidationError(f"Duplicate serial number {serial}", {field: "duplicate"})
        seen_serials.add(serial)

        tare = _weight(entry, "tare_weight", index)
        net = _weight(entry, "net_weight", index)
        gross = tare + net
        if entry.get("gross_weight") is not None:
            gross_given = _weight(entry, "gross_weight", index)
            if abs(gross_given - gross) > Decimal("0.5"):
                field = f"cylinders[{index}].gross_weight"
                raise ValidationError(f"{field} must equal tare + net weight", {field: "inconsistent"})
            gross = gross_given

        cleaned.append({
            "serial_number": serial,
            "tare_weight": float(tare),
            "net_weight": float(net),
            "gross_weight": float(gross),
            "weight_difference": float(gross - tare - net),
            "photo_url": (str(entry["photo_url"]).strip() if entry.get("photo_url") else None),
        })
    return cleaned
