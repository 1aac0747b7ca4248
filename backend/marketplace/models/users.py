from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Identity core shared by every actor.

    ROLE VARIANTS: joined-table inheritance keyed on `role`. Each variant
    table holds the fields that only make sense for that role as NOT NULL
    columns, so a seller without a business name cannot be stored at all.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(16), nullable=False)

    phone_number = db.Column(db.String(16), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)

    # Bcrypt hash; null for passcode-only accounts
    password_hash = db.Column(db.String(255), nullable=True)

    # One-time passcode (SHA-256 of the code) and its expiry
    otp_hash = db.Column(db.String(64), nullable=True)
    otp_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    language = db.Column(db.String(16), nullable=False, default="english")
    fcm_token = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"polymorphic_on": role}

    @property
    def display_name(self) -> str:
        return self.phone_number

    def profile_dict(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "phone_number": self.phone_number,
            "email": self.email,
            "language": self.language,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "display_name": self.display_name,
            "profile": self.profile_dict(),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class Buyer(User):
    __tablename__ = "buyer_profiles"

    id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    full_name = db.Column(db.String(128), nullable=False)
    buyer_type = db.Column(db.String(16), nullable=False, default="domestic")  # domestic, commercial
    cnic = db.Column(db.String(15), nullable=True)

    addresses = db.relationship(
        "BuyerAddress",
        backref="buyer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BuyerAddress.id",
    )

    __mapper_args__ = {"polymorphic_identity": "buyer"}

    @property
    def display_name(self) -> str:
        return self.full_name

    def profile_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "buyer_type": self.buyer_type,
            "cnic": self.cnic,
            "addresses": [a.to_dict() for a in self.addresses],
        }


class BuyerAddress(db.Model):
    """Saved delivery address of a buyer."""
    __tablename__ = "buyer_addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("buyer_profiles.id"), nullable=False, index=True)
    label = db.Column(db.String(64), nullable=False, default="Home")
    address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(64), nullable=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "address": self.address,
            "city": self.city,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_default": self.is_default,
        }


class Seller(User):
    __tablename__ = "seller_profiles"

    id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    business_name = db.Column(db.String(128), nullable=False)
    license_number = db.Column(db.String(64), nullable=False)
    license_expiry = db.Column(db.DateTime(timezone=True), nullable=True)
    ntn = db.Column(db.String(32), nullable=True)

    # pending, approved, rejected
    seller_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    rating_average = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)

    __mapper_args__ = {"polymorphic_identity": "seller"}

    @property
    def display_name(self) -> str:
        return self.business_name

    def profile_dict(self) -> dict:
        return {
            "business_name": self.business_name,
            "license_number": self.license_number,
            "license_expiry": to_utc_z(self.license_expiry) if self.license_expiry else None,
            "ntn": self.ntn,
            "seller_status": self.seller_status,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "rating": {"average": self.rating_average, "count": self.rating_count},
        }


class Driver(User):
    __tablename__ = "driver_profiles"

    id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    full_name = db.Column(db.String(128), nullable=False)
    vehicle_number = db.Column(db.String(32), nullable=False, unique=True)
    license_number = db.Column(db.String(64), nullable=False)

    # Service zone: a circle around a centre point
    zone_id = db.Column(db.String(32), nullable=True)
    zone_name = db.Column(db.String(64), nullable=True)
    zone_latitude = db.Column(db.Float, nullable=True)
    zone_longitude = db.Column(db.Float, nullable=True)
    zone_radius_km = db.Column(db.Float, nullable=False, default=10.0)

    auto_assign_orders = db.Column(db.Boolean, nullable=False, default=True)

    # available, busy, offline
    driver_status = db.Column(db.String(16), nullable=False, default="available", index=True)

    current_latitude = db.Column(db.Float, nullable=True)
    current_longitude = db.Column(db.Float, nullable=True)
    location_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "driver"}

    @property
    def display_name(self) -> str:
        return self.full_name

    @property
    def has_zone(self) -> bool:
        return self.zone_latitude is not None and self.zone_longitude is not None

    def profile_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "vehicle_number": self.vehicle_number,
            "license_number": self.license_number,
            "zone": {
                "id": self.zone_id,
                "name": self.zone_name,
                "latitude": self.zone_latitude,
                "longitude": self.zone_longitude,
                "radius_km": self.zone_radius_km,
            } if self.has_zone else None,
            "auto_assign_orders": self.auto_assign_orders,
            "driver_status": self.driver_status,
            "current_location": {
                "latitude": self.current_latitude,
                "longitude": self.current_longitude,
                "updated_at": to_utc_z(self.location_updated_at) if self.location_updated_at else None,
            } if self.current_latitude is not None else None,
        }


class Admin(User):
    __tablename__ = "admin_profiles"

    id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    full_name = db.Column(db.String(128), nullable=False)

    __mapper_args__ = {"polymorphic_identity": "admin"}

    @property
    def display_name(self) -> str:
        return self.full_name

    def profile_dict(self) -> dict:
        return {"full_name": self.full_name}


class SessionToken(db.Model):
    """
    Opaque bearer sessions.

    Only SHA-256 hashes are stored. The refresh token is single use:
    refreshing revokes this row and issues a new pair.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    refresh_token_hash = db.Column(db.String(64), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    refresh_expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(64), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "refresh_expires_at": to_utc_z(self.refresh_expires_at),
            "is_revoked": self.is_revoked,
        }
