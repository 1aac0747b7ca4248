# Overview: Service-layer operations for auth; registration, passwords and one-time passcodes.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- One-time passcodes are 6 digits, stored as SHA-256 hashes, single use,
  and expire after OTP_TTL_MINUTES
- Session tokens managed separately (see session_service.py)
"""

import hashlib
import hmac
import logging
import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..constants import BUYER_TYPES, LANGUAGES
from ..extensions import db
from ..errors import AuthError, ConflictError, ValidationError
from ..models import Admin, Buyer, Driver, Seller, User
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import require_fields, validate_choice, validate_phone_number

logger = logging.getLogger(__name__)

PUBLIC_ROLES = ("buyer", "seller")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, {"password": message})


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12, after the strength check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """bcrypt.checkpw is timing-safe. Malformed hashes never verify."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_phone(phone) -> str:
    """Canonical +92 form: 03001234567 / 3001234567 / +923001234567 -> +923001234567."""
    phone = validate_phone_number(phone)
    if phone.startswith("+92"):
        return phone
    if phone.startswith("0"):
        phone = phone[1:]
    return "+92" + phone


def find_by_phone(phone) -> User | None:
    return db.session.query(User).filter_by(phone_number=normalize_phone(phone)).first()


# =============================================================================
# Registration
# =============================================================================

def _common_fields(data: dict) -> dict:
    fields = {
        "phone_number": normalize_phone(data.get("phone_number")),
        "email": (str(data["email"]).strip().lower() or None) if data.get("email") else None,
        "language": validate_choice(data.get("language", "english"), LANGUAGES, "language"),
        "is_active": True,
    }
    if data.get("password"):
        fields["password_hash"] = hash_password(data["password"])
    return fields


def _build_user(role: str, data: dict) -> User:
    fields = _common_fields(data)
    if role == "buyer":
        require_fields(data, "full_name")
        return Buyer(
            full_name=str(data["full_name"]).strip()[:128],
            buyer_type=validate_choice(data.get("buyer_type", "domestic"), BUYER_TYPES, "buyer_type"),
            cnic=(str(data["cnic"]).strip()[:15] if data.get("cnic") else None),
            **fields,
        )
    if role == "seller":
        require_fields(data, "business_name", "license_number")
        expiry = None
        if data.get("license_expiry"):
            try:
                expiry = parse_iso_datetime(str(data["license_expiry"]))
            except ValueError:
                raise ValidationError("license_expiry must be an ISO-8601 date", {"license_expiry": "not a date"})
        return Seller(
            business_name=str(data["business_name"]).strip()[:128],
            license_number=str(data["license_number"]).strip()[:64],
            license_expiry=expiry,
            ntn=(str(data["ntn"]).strip()[:32] if data.get("ntn") else None),
            seller_status="pending",
            **fields,
        )
    if role == "driver":
        require_fields(data, "full_name", "vehicle_number", "license_number")
        return Driver(
            full_name=str(data["full_name"]).strip()[:128],
            vehicle_number=str(data["vehicle_number"]).strip().upper()[:32],
            license_number=str(data["license_number"]).strip()[:64],
            driver_status="available",
            auto_assign_orders=bool(data.get("auto_assign_orders", True)),
            is_verified=True,
            **fields,
        )
    if role == "admin":
        require_fields(data, "full_name")
        return Admin(full_name=str(data["full_name"]).strip()[:128], is_verified=True, **fields)
    raise ValidationError(f"Unknown role: {role}", {"role": "invalid choice"})


def create_user(role: str, data: dict) -> User:
    """
    Create a user of the given role.

    Raises ValidationError on bad input and ConflictError when the phone
    number, email or vehicle number is already registered.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "phone_number")
    user = _build_user(role, data)

    if db.session.query(User.id).filter_by(phone_number=user.phone_number).first():
        raise ConflictError("Phone number already registered", {"phone_number": "taken"})

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User already exists", {"phone_number": "taken"})

    logger.info("Created %s user %s", role, user.id)
    return user


def register(data: dict) -> User:
    """Self-service signup; only buyers and sellers may register themselves."""
    role = (data or {}).get("role", "buyer")
    validate_choice(role, PUBLIC_ROLES, "role")
    return create_user(role, data)


# =============================================================================
# One-time passcodes
# =============================================================================

def _hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def issue_otp(user: User) -> str:
    """
    Generate and store a new passcode for the user, replacing any earlier one.

    Returns the plaintext code for the SMS gateway; it is never stored.
    """
    code = f"{secrets.randbelow(1_000_000):06d}"
    user.otp_hash = _hash_code(code)
    user.otp_expires_at = utcnow() + timedelta(minutes=current_app.config["OTP_TTL_MINUTES"])
    db.session.commit()
    logger.info("Issued one-time passcode for user %s", user.id)
    return code


def verify_otp(user: User, code) -> None:
    """Consume the user's passcode; raises AuthError when wrong or expired."""
    if not user.otp_hash or not user.otp_expires_at:
        raise AuthError("No passcode requested")
    if user.otp_expires_at < utcnow():
        user.otp_hash = None
        user.otp_expires_at = None
        db.session.commit()
        raise AuthError("Passcode expired")
    if not hmac.compare_digest(user.otp_hash, _hash_code(str(code or "").strip())):
        raise AuthError("Invalid passcode")

    user.otp_hash = None
    user.otp_expires_at = None
    user.is_verified = True
    db.session.commit()


def authenticate(phone_number, password: str | None = None, otp: str | None = None) -> User:
    """Password or passcode login. Unknown phone and wrong secret look the same."""
    if not password and not otp:
        raise ValidationError("password or otp is required", {"password": "required"})
    try:
        user = find_by_phone(phone_number)
    except ValidationError:
        raise AuthError("Invalid credentials")
    if user is None:
        raise AuthError("Invalid credentials")

    if password:
        if not verify_password(password, user.password_hash):
            raise AuthError("Invalid credentials")
    else:
        verify_otp(user, otp)

    if not user.is_active:
        raise AuthError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str | None, new_password: str) -> None:
    if user.password_hash and not verify_password(current_password or "", user.password_hash):
        raise AuthError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
