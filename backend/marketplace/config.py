# backend/marketplace/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marketplace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///marketplace.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Only for local debugging; never enable in production
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", False)

    # Geospatial search
    DEFAULT_SEARCH_RADIUS_M = _env_int("DEFAULT_SEARCH_RADIUS_M", 5000)
    DEFAULT_DRIVER_ZONE_RADIUS_KM = _env_int("DEFAULT_DRIVER_ZONE_RADIUS_KM", 10)

    # Delivery pricing (minor units)
    STANDARD_DELIVERY_CHARGE_CENTS = _env_int("STANDARD_DELIVERY_CHARGE_CENTS", 10000)
    URGENT_DELIVERY_CHARGE_CENTS = _env_int("URGENT_DELIVERY_CHARGE_CENTS", 20000)
    URGENT_DELIVERY_FEE_CENTS = _env_int("URGENT_DELIVERY_FEE_CENTS", 10000)

    # buyer_confirmation | on_delivery
    ORDER_COMPLETION_POLICY = os.environ.get("ORDER_COMPLETION_POLICY", "buyer_confirmation")
    DELIVERY_CONFIRMATION_TIMEOUT_HOURS = _env_int("DELIVERY_CONFIRMATION_TIMEOUT_HOURS", 48)

    INVOICE_BASE_URL = os.environ.get("INVOICE_BASE_URL", "http://localhost:5000/invoices")

    # One-time passcodes
    OTP_TTL_MINUTES = _env_int("OTP_TTL_MINUTES", 10)
    OTP_DEBUG_ECHO = _env_bool("OTP_DEBUG_ECHO", False)

    # Sessions
    SESSION_ACCESS_TTL_MINUTES = _env_int("SESSION_ACCESS_TTL_MINUTES", 120)
    SESSION_REFRESH_TTL_DAYS = _env_int("SESSION_REFRESH_TTL_DAYS", 30)

    # Realtime subscriber queues drop events once full
    REALTIME_QUEUE_SIZE = _env_int("REALTIME_QUEUE_SIZE", 100)
    REALTIME_KEEPALIVE_SECONDS = _env_int("REALTIME_KEEPALIVE_SECONDS", 15)

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]
