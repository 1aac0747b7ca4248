# Overview: Request decorators for API routes (bearer authentication and role checks).

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated User (Buyer, Seller, Driver or Admin)
    - g.session_context: the full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, revoked or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "kind": "auth_error"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "kind": "auth_error"}), 401

        g.current_user = context.user
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Must be applied after @require_auth.

    Sellers must also be approved before using seller routes, except the
    ones marked allow_pending_seller.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "kind": "auth_error"}), 401

            user = g.current_user
            if user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "kind": "permission_denied",
                    "required_roles": list(roles),
                }), 403

            if user.role == "seller" and user.seller_status != "approved" and not getattr(f, "allow_pending_seller", False):
                return jsonify({
                    "error": "Seller account is not approved",
                    "kind": "permission_denied",
                    "seller_status": user.seller_status,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def allow_pending_seller(f):
    f.allow_pending_seller = True
    return f
