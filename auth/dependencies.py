"""
auth/dependencies.py -- The Auth Gate: FastAPI Depends() helpers for authentication.

Two token transports are accepted, checked in priority order:
  1. JWT cookie ("access_token") -- set by signin/signup in cookie transport.
  2. Authorization: Bearer <token> header -- API clients holding the token.

Both converge on a TokenClaims identity after verification. The gate is
stateless: it verifies the signature and expiry and never reads the user
store. Handlers that need the full record look it up by claims.id.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises Unauthenticated (HTTP 401).

Layer rule: may import from fastapi (Request) because this module is part of
the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import InvalidToken, Unauthenticated
from auth.models import TokenClaims
from auth.tokens import ACCESS_COOKIE, verify_access_token

logger = logging.getLogger("paylink.auth")


def extract_token(request: Request) -> str | None:
    """Return the raw token from the cookie or Bearer header, or None."""
    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_identity(request: Request) -> TokenClaims | None:
    """Attempt to authenticate the request. Never raises."""
    token = extract_token(request)
    if token is None:
        return None
    try:
        return verify_access_token(token)
    except InvalidToken:
        return None


def get_current_identity(request: Request) -> TokenClaims:
    """Require authentication and attach the identity to request.state.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: TokenClaims = Depends(get_current_identity)): ...
    """
    token = extract_token(request)
    if token is None:
        raise Unauthenticated()
    try:
        identity = verify_access_token(token)
    except InvalidToken as exc:
        logger.info("Rejected token on %s %s: %s", request.method, request.url.path, exc)
        raise Unauthenticated("Session is invalid or expired.") from exc
    request.state.identity = identity
    return identity
