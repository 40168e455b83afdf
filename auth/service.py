"""
auth/service.py -- Signup, signin, profile update, and directory search flows.

Each flow is a plain function over a UserStore. Flows raise AuthError
subclasses for every client-visible outcome and never build HTTP responses;
api/routes/v1/ maps results and errors onto the wire.

Failure policy:
  Validation, duplicate, credential, and ownership errors are raised as-is.
  Storage (SQLAlchemyError) and crypto (bcrypt ValueError, jose JWTError)
  failures are logged here with full detail and re-raised as InternalFailure,
  whose client message is opaque.

Ownership:
  update_profile() and search_directory() take the caller's durable id from
  the Auth Gate's TokenClaims. No flow accepts a target identity from input.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Iterator
from contextlib import contextmanager

from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, DuplicateIdentity, InternalFailure, InvalidCredentials, NotFound, ValidationError
from auth.models import (
    NAME_MAX_LENGTH,
    PASSWORD_MAX_BYTES,
    USER_ID_MAX_LENGTH,
    USER_ID_MIN_LENGTH,
    USER_ID_PATTERN,
    Account,
    DirectoryEntry,
    SigninResult,
    SignupResult,
    TokenClaims,
    UpdateResult,
    User,
)
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password, issue_for, verify_password
from core.config import get_settings

logger = logging.getLogger("paylink.auth")

_USER_ID_RE = re.compile(USER_ID_PATTERN)

# Wire name -> User attribute for the fields a profile update may change.
_PROFILE_FIELDS = {"firstName": "first_name", "lastName": "last_name", "password": "password"}


# ---------------------------------------------------------------------------
# Failure boundary
# ---------------------------------------------------------------------------


@contextmanager
def _flow_boundary(operation: str) -> Iterator[None]:
    """Downgrade storage and crypto failures to InternalFailure.

    AuthError subclasses pass through untouched -- they are already the
    client-visible outcome.
    """
    try:
        yield
    except AuthError:
        raise
    except (SQLAlchemyError, JWTError, ValueError) as exc:
        logger.exception("%s failed", operation)
        raise InternalFailure() from exc


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_name(field: str, value: str, errors: list[dict]) -> None:
    if not value.strip():
        errors.append({"field": field, "message": "must not be blank"})
    elif len(value) > NAME_MAX_LENGTH:
        errors.append({"field": field, "message": f"must be at most {NAME_MAX_LENGTH} characters"})


def _check_password(value: str, errors: list[dict]) -> None:
    if not value:
        errors.append({"field": "password", "message": "must not be empty"})
    elif len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append({"field": "password", "message": f"must be at most {PASSWORD_MAX_BYTES} bytes as UTF-8"})


def _check_user_id(value: str, errors: list[dict]) -> None:
    if not USER_ID_MIN_LENGTH <= len(value) <= USER_ID_MAX_LENGTH:
        errors.append(
            {
                "field": "userId",
                "message": f"must be {USER_ID_MIN_LENGTH}-{USER_ID_MAX_LENGTH} characters",
            }
        )
    elif not _USER_ID_RE.match(value):
        errors.append({"field": "userId", "message": "may contain only letters, digits and . _ @ + -"})


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


def signup(store: UserStore, first_name: str, last_name: str, user_id: str, password: str) -> SignupResult:
    """Create a user plus its account and issue a session token.

    The opening balance is chosen server-side in [0, INITIAL_BALANCE_CEILING).
    There is deliberately no balance parameter.

    Raises ValidationError, DuplicateIdentity, or InternalFailure.
    """
    first_name, last_name = first_name.strip(), last_name.strip()
    errors: list[dict] = []
    _check_name("firstName", first_name, errors)
    _check_name("lastName", last_name, errors)
    _check_user_id(user_id, errors)
    _check_password(password, errors)
    if errors:
        raise ValidationError(detail=errors)

    with _flow_boundary("signup"):
        if store.get_by_user_id(user_id) is not None:
            raise DuplicateIdentity()

        balance = secrets.randbelow(get_settings().initial_balance_ceiling)
        user = User(
            user_id=user_id,
            first_name=first_name,
            last_name=last_name,
            hashed_password=hash_password(password),
        )
        # Raises DuplicateIdentity if a concurrent signup took the userId.
        user.id = store.create_user_with_account(user, balance)
        token = issue_for(user)

    logger.info("Signup: created user id=%s", user.id)
    return SignupResult(user=user, account=Account(owner_id=user.id, balance=balance), token=token)


def signin(store: UserStore, user_id: str, password: str) -> SigninResult:
    """Verify credentials and issue a session token.

    Unknown userId and wrong password both raise the same InvalidCredentials.
    """
    with _flow_boundary("signin"):
        user = authenticate_user(store, user_id, password)
        if user is None:
            logger.warning("Signin failed")
            raise InvalidCredentials()
        token = issue_for(user)
    logger.info("Signin: user id=%s", user.id)
    return SigninResult(user=user, token=token)


def update_profile(store: UserStore, identity: TokenClaims, changes: dict[str, str | None]) -> UpdateResult:
    """Apply a partial update to the caller's own record.

    changes is keyed by wire name (firstName, lastName, password). Keys that
    are absent or None are left untouched. A supplied value equal to the
    stored one is not counted as a change; for the password that comparison
    runs through bcrypt.

    Raises ValidationError, NotFound, or InternalFailure.
    """
    unknown = set(changes) - set(_PROFILE_FIELDS)
    if unknown:
        raise ValidationError(detail=[{"field": f, "message": "cannot be updated"} for f in sorted(unknown)])

    supplied: dict[str, str] = {}
    errors: list[dict] = []
    for wire_name, value in changes.items():
        if value is None:
            continue
        if wire_name == "password":
            _check_password(value, errors)
        else:
            value = value.strip()
            _check_name(wire_name, value, errors)
        supplied[wire_name] = value
    if errors:
        raise ValidationError(detail=errors)

    with _flow_boundary("profile update"):
        current = store.get_by_id(identity.id)
        if current is None:
            raise NotFound("User not found.")

        updates: dict[str, str] = {}
        applied: list[str] = []
        for wire_name, value in supplied.items():
            if wire_name == "password":
                if verify_password(value, current.hashed_password):
                    continue
                updates["hashed_password"] = hash_password(value)
            else:
                attr = _PROFILE_FIELDS[wire_name]
                if getattr(current, attr) == value:
                    continue
                updates[attr] = value
            applied.append(wire_name)

        if updates and not store.update_user(identity.id, **updates):
            raise NotFound("User not found.")

    if applied:
        logger.info("Profile update: user id=%s changed %s", identity.id, ",".join(applied))
    return UpdateResult(changed_fields=applied)


def search_directory(store: UserStore, identity: TokenClaims, name_filter: str | None = None) -> list[DirectoryEntry]:
    """Return other users' public display fields, optionally filtered by name.

    The caller is always excluded. No match is an empty list, not an error.
    """
    needle = name_filter.strip() if name_filter else None
    with _flow_boundary("directory search"):
        users = store.search_users(needle or None, exclude_id=identity.id)
    return [
        DirectoryEntry(id=u.id, first_name=u.first_name, last_name=u.last_name, display_name=u.display_name)
        for u in users
    ]


def get_balance(store: UserStore, identity: TokenClaims) -> Account:
    """Return the caller's own account."""
    with _flow_boundary("balance lookup"):
        account = store.get_account(identity.id)
    if account is None:
        raise NotFound("Account not found.")
    return account
