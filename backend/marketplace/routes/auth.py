# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/marketplace/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration
- Passcode (OTP) login for phone-only accounts
- Bearer access tokens with one-time refresh rotation
- Only buyers and sellers may self-register; drivers and admins are
  created by an admin (POST /api/admin/drivers, CLI: flask users create-admin)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_auth
from ..errors import AuthError, DomainError, error_response, internal_error
from ..services import auth_service, buyer_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client():
    return request.headers.get("User-Agent"), request.remote_addr


@auth_bp.post("/register")
def register_route():
    """
    Self-registration for buyers and sellers.

    Sellers start as pending and cannot use seller routes until approved.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register(data)
        user_agent, ip_address = _client()
        tokens = session_service.create_session(user, user_agent=user_agent, ip_address=ip_address)
        return jsonify({"user": user.to_dict(), **tokens.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to register user")


@auth_bp.post("/otp/request")
def request_otp_route():
    """
    Send a one-time passcode to a registered phone number.

    The response is the same whether or not the number is registered.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("phone_number"):
            return jsonify({"error": "phone_number required", "kind": "validation_error"}), 400

        response = {"message": "If the number is registered, a passcode has been sent"}
        user = auth_service.find_by_phone(data["phone_number"])
        if user is not None and user.is_active:
            code = auth_service.issue_otp(user)
            # SMS delivery is external; echo only in local development
            if current_app.config.get("OTP_DEBUG_ECHO"):
                response["otp"] = code
        return jsonify(response), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to issue passcode")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by phone number plus password or passcode.

    Returns user info and a token pair. The access token goes in the
    Authorization header; the refresh token is exchanged at /refresh.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("phone_number"):
            return jsonify({"error": "phone_number required", "kind": "validation_error"}), 400

        user = auth_service.authenticate(
            data["phone_number"],
            password=data.get("password"),
            otp=data.get("otp"),
        )
        user_agent, ip_address = _client()
        tokens = session_service.create_session(user, user_agent=user_agent, ip_address=ip_address)
        return jsonify({"user": user.to_dict(), **tokens.to_dict(), "message": "Login successful"}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to login user")


@auth_bp.post("/refresh")
def refresh_route():
    """Exchange a refresh token for a new pair; the old pair stops working."""
    try:
        data = request.get_json(silent=True) or {}
        user_agent, ip_address = _client()
        tokens = session_service.refresh_session(
            data.get("refresh_token"),
            user_agent=user_agent,
            ip_address=ip_address,
        )
        return jsonify(tokens.to_dict()), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to refresh session")


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required", "kind": "auth_error"}), 401

        if not session_service.revoke_session(token):
            raise AuthError("Invalid or expired token")

        return jsonify({"message": "Logout successful"}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.patch("/me")
@require_auth
def update_me_route():
    try:
        user = buyer_service.update_profile(g.current_user, request.get_json(silent=True))
        return jsonify({"user": user.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update profile")


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("new_password"):
            return jsonify({"error": "new_password required", "kind": "validation_error"}), 400

        auth_service.change_password(g.current_user, data.get("current_password"), data["new_password"])
        # Every other device has to sign in again
        revoked = session_service.revoke_all_for_user(g.current_user.id, reason="password_change")
        return jsonify({"message": "Password changed", "revoked_sessions": revoked}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to change password")
