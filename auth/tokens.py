"""
auth/tokens.py -- Session tokens, password hashing, and session cookies.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the durable user id (sub), the login string, a first-name display
       claim, and issue/expiry times. Tokens are stateless: nothing is stored
       server-side, and rotating SECRET_KEY is the only way to invalidate them
       all at once.

  Passwords: bcrypt, salted per hash. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a userId exists.

  Cookies: the session token travels in an httpOnly, same-site-strict cookie.
       Two companion display cookies (userId, displayName) are readable by
       client scripts for personalization. They carry no authority -- the
       Auth Gate only ever reads access_token.

  SECRET_KEY: sourced from core.config.get_settings(), which validates it at
       startup (dev mode auto-generates, production refuses to start without).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from urllib.parse import quote

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import PASSWORD_MAX_BYTES, TokenClaims
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("paylink.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
USER_ID_COOKIE = "userId"
DISPLAY_NAME_COOKIE = "displayName"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt refuses input over 72 bytes. Callers validate against
    PASSWORD_MAX_BYTES first.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash makes bcrypt raise ValueError; treat that as a
    mismatch rather than a crash. A plaintext longer than bcrypt accepts can
    never have been stored, so it is a mismatch too.
    """
    if len(plain.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


# Timing equalization dummy hash, computed once at module load. Always call
# verify_password() even when the userId does not exist.
_DUMMY_HASH: str = hash_password("paylink_timing_dummy")


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


def create_access_token(id: int, user_id: str, first_name: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for a user identity.

    Args:
        id:             Durable user id (stored as the sub claim).
        user_id:        Login string, for display and logging only.
        first_name:     Display claim.
        expire_seconds: Lifetime in seconds. 0 (default) uses
                        Settings.token_expire_seconds (7 days).
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": str(id),
        "user_id": user_id,
        "first_name": first_name,
        "iat": issued,
        "exp": issued + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not all(k in payload for k in ("sub", "user_id", "first_name", "iat", "exp")):
        return None
    return payload


def verify_access_token(token: str) -> TokenClaims:
    """Verify a token and return its claims.

    Raises InvalidToken on a bad signature, a malformed structure, missing
    claims, a non-numeric subject, or expiry. jose checks exp itself.
    """
    payload = decode_access_token(token)
    if payload is None:
        raise InvalidToken("Token failed verification.")
    try:
        return TokenClaims(
            id=int(payload["sub"]),
            user_id=str(payload["user_id"]),
            first_name=str(payload["first_name"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidToken("Token claims are malformed.") from exc


def issue_for(user: User) -> str:
    """Issue a session token for a stored user."""
    return create_access_token(user.id, user.user_id, user.first_name)


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, user_id: str, password: str) -> User | None:
    """Authenticate a userId/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown userId: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_user_id(user_id)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (the default).
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        ACCESS_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def set_display_cookies(response, user: User) -> None:
    """Write the script-readable personalization cookies.

    These are display hints only. Never use them for authorization.
    """
    for name, value in ((USER_ID_COOKIE, user.user_id), (DISPLAY_NAME_COOKIE, user.display_name)):
        response.set_cookie(
            name,
            value=quote(value),
            httponly=False,
            samesite="strict",
            secure=_settings.secure_cookies,
            max_age=_settings.token_expire_seconds,
        )


def clear_session_cookies(response) -> None:
    for name in (ACCESS_COOKIE, USER_ID_COOKIE, DISPLAY_NAME_COOKIE):
        response.delete_cookie(name, samesite="strict", secure=_settings.secure_cookies)
