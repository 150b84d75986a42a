"""Error taxonomy shared by storage, services and route handlers.

Every error carries the HTTP status it maps to and a human-readable message;
``main.py`` renders them as ``{"error": message}``.
"""

from __future__ import annotations

from fastapi import status


class SentenceStashError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(SentenceStashError):
    """Malformed or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class AuthenticationRequired(SentenceStashError):
    """No valid session or bearer token was presented."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class AuthorizationDenied(SentenceStashError):
    """Authenticated, but lacking rights over the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(SentenceStashError):
    """Referenced entity is absent."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class BusinessRuleViolation(SentenceStashError):
    """Request is well-formed but breaks a domain rule (e.g. "already a member")."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request not allowed"


__all__ = [
    "SentenceStashError",
    "ValidationFailed",
    "AuthenticationRequired",
    "AuthorizationDenied",
    "NotFound",
    "BusinessRuleViolation",
]
