"""Error taxonomy — typed exceptions with stable machine-readable codes.

Learn: Services raise these directly; the API layer never builds error
bodies by hand. One global handler (api/error_handlers.py) turns any
RescueTrackError into the envelope:

    {"error": {"code": "...", "message": "...", "details": [...]}}

Token errors subclass Unauthenticated: every token failure on a protected
route is a 401, but the client can still tell "refresh me" (expired)
apart from "log in again" (invalid).
"""

from typing import Any, Optional


class RescueTrackError(Exception):
    """Base exception for all domain failures."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


# ─── Authentication (401) ────────────────────────────────


class Unauthenticated(RescueTrackError):
    code = "AUTH_REQUIRED"
    http_status = 401


class InvalidCredentials(Unauthenticated):
    code = "AUTH_INVALID_CREDENTIALS"


class TokenInvalid(Unauthenticated):
    code = "AUTH_TOKEN_INVALID"


class TokenExpired(Unauthenticated):
    code = "AUTH_TOKEN_EXPIRED"


# ─── Client errors ───────────────────────────────────────


class PermissionDenied(RescueTrackError):
    code = "PERMISSION_DENIED"
    http_status = 403


class ValidationError(RescueTrackError):
    """Request data failed validation.

    details lists every offending field as {"field", "message"} so the
    client can render all problems at once.
    """

    code = "VALIDATION_ERROR"
    http_status = 400

    @classmethod
    def for_fields(cls, errors: dict[str, str]) -> "ValidationError":
        return cls(
            "Validation failed",
            [{"field": field, "message": msg} for field, msg in errors.items()],
        )


class ResourceNotFound(RescueTrackError):
    code = "RESOURCE_NOT_FOUND"
    http_status = 404


class ResourceConflict(RescueTrackError):
    code = "RESOURCE_CONFLICT"
    http_status = 409


class RateLimited(RescueTrackError):
    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429


# ─── Server errors ───────────────────────────────────────


class InternalError(RescueTrackError):
    code = "INTERNAL_ERROR"
    http_status = 500
