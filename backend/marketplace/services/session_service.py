# Overview: Service-layer operations for session; bearer tokens with one-time refresh rotation.

"""
Session Token Management Service

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Access token lifetime SESSION_ACCESS_TTL_MINUTES
- Refresh token lifetime SESSION_REFRESH_TTL_DAYS, single use: refreshing
  revokes the session and issues a new pair
- Presenting an already used refresh token revokes every session of the user
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..errors import AuthError
from ..models import SessionToken, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    user: User
    session: SessionToken


@dataclass
class IssuedTokens:
    session: SessionToken
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict:
        return {
            "token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.session.to_dict()["expires_at"],
            "refresh_expires_at": self.session.to_dict()["refresh_expires_at"],
        }


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user: User, user_agent: str | None = None, ip_address: str | None = None) -> IssuedTokens:
    access_token = generate_token()
    refresh_token = generate_token()
    now = utcnow()
    cfg = current_app.config

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(minutes=cfg["SESSION_ACCESS_TTL_MINUTES"]),
        refresh_expires_at=now + timedelta(days=cfg["SESSION_REFRESH_TTL_DAYS"]),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return IssuedTokens(session=session, access_token=access_token, refresh_token=refresh_token)


def validate_session(token: str) -> SessionContext | None:
    """
    Return the session context for a live access token, else None.

    Inactive users are rejected here so deactivation takes effect at once.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = db.session.get(User, session.user_id)
    if user is None or not user.is_active:
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def refresh_session(refresh_token: str, user_agent: str | None = None, ip_address: str | None = None) -> IssuedTokens:
    if not refresh_token:
        raise AuthError("refresh_token is required")
    session = db.session.query(SessionToken).filter_by(refresh_token_hash=hash_token(refresh_token)).first()
    if session is None:
        raise AuthError("Invalid refresh token")

    if session.is_revoked:
        # A rotated token came back: assume theft and end every session
        revoked = revoke_all_for_user(session.user_id, reason="refresh_reuse")
        logger.warning("Refresh token reuse for user %s; revoked %d sessions", session.user_id, revoked)
        raise AuthError("Refresh token already used")

    if session.refresh_expires_at < utcnow():
        raise AuthError("Refresh token expired")

    user = db.session.get(User, session.user_id)
    if user is None or not user.is_active:
        raise AuthError("Account is deactivated")

    _revoke(session, "rotated")
    db.session.commit()
    return create_session(user, user_agent=user_agent, ip_address=ip_address)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    _revoke(session, "logout")
    db.session.commit()
    return True


def revoke_all_for_user(user_id: int, reason: str = "revoked") -> int:
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    db.session.commit()
    return len(sessions)
