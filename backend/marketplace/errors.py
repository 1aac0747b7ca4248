# Overview: Domain error taxonomy shared by services and routes.

"""
Every service raises one of these instead of returning status codes.

Routes translate them with `error_response()`; anything that is not a
DomainError is an unexpected failure and becomes a logged 500.
"""

from __future__ import annotations

from flask import current_app, jsonify


class DomainError(Exception):
    """Base class for expected business failures."""
    kind = "domain_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """400-level input problem. `details` maps field name to reason."""
    kind = "validation_error"
    status_code = 400


class AuthError(DomainError):
    """Bad credentials, expired passcode or token."""
    kind = "auth_error"
    status_code = 401


class PermissionDeniedError(DomainError):
    """Authenticated, but the actor may not touch this resource."""
    kind = "permission_denied"
    status_code = 403


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = 404


class InvalidTransitionError(DomainError):
    """Requested status change is not allowed from the current status or by this actor."""
    kind = "invalid_transition"
    status_code = 409


class ConflictError(DomainError):
    """Concurrent modification or uniqueness violation."""
    kind = "conflict"
    status_code = 409


class ExternalServiceError(DomainError):
    """A blocking collaborator (invoice generation) failed."""
    kind = "external_service_error"
    status_code = 502


def error_response(exc: DomainError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(message: str):
    """Log the active exception and return a 500. Detail only with EXPOSE_ERROR_DETAILS."""
    current_app.logger.exception(message)
    payload = {"error": "Internal server error", "kind": "internal_error"}
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        payload["details"] = {"message": message}
    return jsonify(payload), 500
