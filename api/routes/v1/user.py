"""
api/routes/v1/user.py -- Signup, signin, profile, and directory REST endpoints.

Routes:
  POST /api/v1/user/signup   -- create user + account; returns token
  POST /api/v1/user/signin   -- password signin; token via body and/or cookie
  POST /api/v1/user/signout  -- clears session and display cookies; 200
  GET  /api/v1/user/me       -- session probe (requires auth)
  PUT  /api/v1/user          -- partial profile update of the caller (requires auth)
  GET  /api/v1/user/bulk     -- directory search, ?filter= optional (requires auth)

Security:
  signin and signup are rate-limited per IP (LOGIN_RATE_LIMIT / SIGNUP_RATE_LIMIT).
  auth.service.signin() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a token.
  Ownership: PUT /user takes the target from the session, never the body.

Handlers are plain def: storage and bcrypt are blocking, so FastAPI runs them
in its threadpool instead of on the event loop. AuthError subclasses raised by
the flows are rendered by the handler in api/main.py.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    DirectoryResponse,
    DirectoryUser,
    MeResponse,
    MessageResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    SigninRequest,
    SignupRequest,
    TokenResponse,
)
from auth import service
from auth.dependencies import get_current_identity, try_get_current_identity
from auth.models import TokenClaims
from auth.store import UserStore
from auth.tokens import clear_session_cookies, set_auth_cookie, set_display_cookies
from core.config import get_settings

_settings = get_settings()
logger = logging.getLogger("paylink.api")

# Auth policy:
# - POST /api/v1/user/signup:   public
# - POST /api/v1/user/signin:   public
# - POST /api/v1/user/signout:  public -- clearing cookies needs no prior auth
# - GET  /api/v1/user/me:       requires auth (get_current_identity)
# - PUT  /api/v1/user:          requires auth; target = caller
# - GET  /api/v1/user/bulk:     requires auth; caller excluded from results
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.signup_rate_limit)
@router.post("/user/signup", response_model=TokenResponse)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new user with a server-assigned opening balance.

    Any balance in the body is ignored. Duplicate userId -> 409.
    """
    user_store: UserStore = request.app.state.user_store
    result = service.signup(user_store, body.first_name, body.last_name, body.user_id, body.password)

    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(message="User created successfully.", token=result.token).model_dump(),
    )
    if _settings.cookie_transport:
        set_auth_cookie(resp, result.token)
        set_display_cookies(resp, result.user)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)
@router.post("/user/signin", response_model=TokenResponse)
def signin(request: Request, body: SigninRequest) -> JSONResponse:
    """Authenticate with userId and password and establish a session.

    Wrong password and unknown userId return the same 401 bad_credentials.
    The token is delivered per SESSION_TRANSPORT; display cookies are always set.
    """
    user_store: UserStore = request.app.state.user_store
    result = service.signin(user_store, body.user_id, body.password)

    token = result.token if _settings.body_transport else None
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(message="Signed in.", token=token).model_dump(exclude_none=True),
    )
    if _settings.cookie_transport:
        set_auth_cookie(resp, result.token)
    set_display_cookies(resp, result.user)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/user/signout", response_model=MessageResponse)
async def signout(request: Request) -> JSONResponse:
    """Clear the session cookies. Previously issued tokens stay valid until expiry."""
    identity = try_get_current_identity(request)
    if identity is not None:
        logger.info("Signout: user id=%s", identity.id)
    resp = JSONResponse(content={"message": "Signed out."})
    clear_session_cookies(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/user/me", response_model=MeResponse)
async def me(identity: TokenClaims = Depends(get_current_identity)) -> MeResponse:
    """Confirm the session and echo the identity it carries."""
    return MeResponse(id=identity.id, user_id=identity.user_id, first_name=identity.first_name)


@router.put("/user", response_model=ProfileUpdateResponse)
def update_user(
    request: Request,
    body: ProfileUpdateRequest,
    identity: TokenClaims = Depends(get_current_identity),
) -> ProfileUpdateResponse:
    """Update the caller's first name, last name, and/or password."""
    user_store: UserStore = request.app.state.user_store
    result = service.update_profile(user_store, identity, body.to_changes())
    if not result.changed:
        return ProfileUpdateResponse(message="No changes made.", changed=[])
    return ProfileUpdateResponse(
        message=f"User updated successfully. Changes made: {','.join(result.changed_fields)}",
        changed=result.changed_fields,
    )


@router.get("/user/bulk", response_model=DirectoryResponse)
def search_users(
    request: Request,
    name_filter: Optional[str] = Query(default=None, alias="filter", max_length=50),
    identity: TokenClaims = Depends(get_current_identity),
) -> DirectoryResponse:
    """Search other users by first or last name (case-insensitive substring)."""
    user_store: UserStore = request.app.state.user_store
    entries = service.search_directory(user_store, identity, name_filter)
    return DirectoryResponse(users=[DirectoryUser.from_entry(e) for e in entries])
