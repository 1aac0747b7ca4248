# Overview: Service-layer operations for seller accounts; contact details and business name.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Seller, User
from .auth_service import normalize_phone

logger = logging.getLogger(__name__)


def update_profile(seller: Seller, data: dict) -> Seller:
    """
    Update business_name, email and phone_number.

    A phone number or email already used by another account is a
    ConflictError. Pending sellers may edit their profile too.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    changes = {}
    if "business_name" in data:
        name = str(data["business_name"] or "").strip()[:128]
        if not name:
            raise ValidationError("business_name cannot be empty", {"business_name": "required"})
        changes["business_name"] = name

    if data.get("email"):
        email = str(data["email"]).strip().lower()[:255]
        if "@" not in email:
            raise ValidationError("email is not valid", {"email": "invalid format"})
        taken = db.session.query(User.id).filter(User.email == email, User.id != seller.id).first()
        if taken is not None:
            raise ConflictError("Email already in use", {"email": "taken"})
        changes["email"] = email

    if data.get("phone_number"):
        phone = normalize_phone(data["phone_number"])
        taken = db.session.query(User.id).filter(User.phone_number == phone, User.id != seller.id).first()
        if taken is not None:
            raise ConflictError("Phone number already in use", {"phone_number": "taken"})
        changes["phone_number"] = phone

    for key, value in changes.items():
        setattr(seller, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Phone number or email already in use")
    logger.info("Seller %s updated %s", seller.id, ", ".join(sorted(changes)) or "nothing")
    return seller
