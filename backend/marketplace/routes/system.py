# backend/marketplace/routes/system.py
"""
System health endpoint.

Checks the database, the session table and the realtime broadcaster.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, SessionToken, User
from ..realtime import get_broadcaster
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        order_count = db.session.query(Order).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "orders": order_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        # Expired but never revoked; harmless, could be cleaned up
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error"
        }


def check_realtime_health() -> dict:
    broadcaster = get_broadcaster()
    if broadcaster.is_closed:
        return {"status": "degraded", "warning": "Realtime broadcaster is closed"}
    return {"status": "healthy", "details": {"queue_size": broadcaster.queue_size}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (realtime push is not business critical)
    - 503: database or session table unavailable
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()
    realtime_health = check_realtime_health()

    all_checks = [database_health, session_health, realtime_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_service": session_health,
            "realtime": realtime_health,
        }
    }

    return response, http_status
