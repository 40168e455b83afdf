"""
auth/errors.py -- Error taxonomy for the authentication subsystem.

Every failure a flow can surface to a client is an AuthError subclass carrying
a machine-readable code, a human message, and the HTTP status the API layer
should use. api/main.py renders all of them through one exception handler into
the standard {"error": {...}} envelope, so flows never build responses.

InvalidToken is internal to auth/tokens.py. The Auth Gate converts it to
Unauthenticated; it never reaches a client as-is.

Layer rule: no imports from api/. Pure stdlib.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base class for client-visible authentication and directory failures."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Bad request."

    def __init__(self, message: str | None = None, detail: Any = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input. detail lists {field, message} entries."""

    status_code = 422
    code = "validation_error"
    message = "Request validation failed."


class DuplicateIdentity(AuthError):
    status_code = 409
    code = "duplicate_identity"
    message = "User already exists, please sign in."


class InvalidCredentials(AuthError):
    """Signin mismatch. Deliberately identical for unknown user and wrong password."""

    status_code = 401
    code = "bad_credentials"
    message = "Invalid userId or password."


class Unauthenticated(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    message = "Record not found."


class InternalFailure(AuthError):
    """Storage or crypto failure. The message stays opaque; detail goes to logs only."""

    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."


class InvalidToken(Exception):
    """Token signature mismatch, malformed structure, missing claims, or expiry."""
