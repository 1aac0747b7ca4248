# Overview: Service-layer operations for buyer profiles, saved delivery addresses and cylinder labels.

from __future__ import annotations

from ..constants import BUYER_TYPES, LANGUAGES
from ..extensions import db
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import Buyer, BuyerAddress, Cylinder, User
from ..validation import require_fields, validate_choice, validate_coordinates


def add_address(buyer: Buyer, data: dict) -> BuyerAddress:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "address", "latitude", "longitude")
    lat, lng = validate_coordinates(data["latitude"], data["longitude"])

    is_default = bool(data.get("is_default")) or not buyer.addresses
    if is_default:
        for existing in buyer.addresses:
            existing.is_default = False

    address = BuyerAddress(
        buyer_id=buyer.id,
        label=str(data.get("label") or "Home").strip()[:64],
        address=str(data["address"]).strip()[:255],
        city=(str(data["city"]).strip()[:64] if data.get("city") else None),
        latitude=lat,
        longitude=lng,
        is_default=is_default,
    )
    db.session.add(address)
    db.session.commit()
    return address


def remove_address(buyer: Buyer, address_id: int) -> None:
    address = db.session.get(BuyerAddress, address_id)
    if address is None or address.buyer_id != buyer.id:
        raise NotFoundError("Address not found")
    was_default = address.is_default
    db.session.delete(address)
    db.session.flush()
    if was_default:
        replacement = db.session.query(BuyerAddress).filter_by(buyer_id=buyer.id).order_by(BuyerAddress.id).first()
        if replacement is not None:
            replacement.is_default = True
    db.session.commit()


def update_profile(user: User, data: dict) -> User:
    """Language and push token for everyone; a few role fields on top."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if "language" in data:
        user.language = validate_choice(data["language"], LANGUAGES, "language")
    if "fcm_token" in data:
        user.fcm_token = (str(data["fcm_token"]).strip()[:255] or None) if data["fcm_token"] else None
    if user.role in ("buyer", "driver", "admin") and data.get("full_name"):
        user.full_name = str(data["full_name"]).strip()[:128]
    if user.role == "buyer" and "buyer_type" in data:
        user.buyer_type = validate_choice(data["buyer_type"], BUYER_TYPES, "buyer_type")
    db.session.commit()
    return user


def rename_cylinder(buyer: Buyer, cylinder_id: int, data: dict) -> Cylinder:
    """Give one of the buyer's cylinders a label of their own."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    name = str(data.get("custom_name") or "").strip()
    if not name:
        raise ValidationError("custom_name is required", {"custom_name": "required"})
    cylinder = db.session.get(Cylinder, cylinder_id)
    if cylinder is None:
        raise NotFoundError("Cylinder not found")
    if cylinder.buyer_id != buyer.id:
        raise PermissionDeniedError("You can only rename your own cylinders")
    cylinder.custom_name = name[:64]
    db.session.commit()
    return cylinder
