"""
API request and response models for Paylink REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire names are camelCase (firstName, userId) to match the existing web client;
the alias generator maps them onto snake_case attributes. Responses are
serialized by alias.
"""

from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from auth.models import (
    NAME_MAX_LENGTH,
    PASSWORD_MAX_BYTES,
    USER_ID_MAX_LENGTH,
    USER_ID_MIN_LENGTH,
    USER_ID_PATTERN,
    Account,
    DirectoryEntry,
)

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"must be at most {PASSWORD_MAX_BYTES} bytes as UTF-8")
    return value


# Names are trimmed; passwords are kept byte-for-byte as typed.
_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=NAME_MAX_LENGTH)]
_Password = Annotated[str, Field(min_length=1, max_length=PASSWORD_MAX_BYTES), AfterValidator(_fits_bcrypt)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/user/signup.

    balance is accepted for compatibility with older clients and ignored --
    the server picks the opening balance.
    """

    model_config = _WIRE

    first_name: _Name
    last_name: _Name
    user_id: str = Field(min_length=USER_ID_MIN_LENGTH, max_length=USER_ID_MAX_LENGTH, pattern=USER_ID_PATTERN)
    password: _Password
    balance: Optional[Any] = Field(default=None, exclude=True)


class SigninRequest(BaseModel):
    """Request body for POST /api/v1/user/signin.

    Only presence is checked here. Shape rules are not applied, so a
    malformed userId fails the same way as an unknown one.
    """

    model_config = _WIRE

    user_id: str = Field(min_length=1, max_length=USER_ID_MAX_LENGTH)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_BYTES)


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /api/v1/user.

    Every field is optional; omitted or null fields are left unchanged.
    extra="forbid" rejects id/userId so the target record can only ever come
    from the session.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    first_name: Optional[_Name] = None
    last_name: Optional[_Name] = None
    password: Optional[_Password] = None

    def to_changes(self) -> dict[str, Optional[str]]:
        """Supplied fields keyed by wire name, as auth.service.update_profile expects."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for signup and signin. token is None in cookie-only transport."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/user/me -- taken from the token, not the store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    message: str = "Authenticated."
    id: int
    user_id: str
    first_name: str


class ProfileUpdateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    changed: list[str]


class DirectoryUser(BaseModel):
    """One row in a directory search. Public display fields only."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    first_name: str
    last_name: str
    display_name: str

    @classmethod
    def from_entry(cls, entry: DirectoryEntry) -> "DirectoryUser":
        return cls(
            id=entry.id,
            first_name=entry.first_name,
            last_name=entry.last_name,
            display_name=entry.display_name,
        )


class DirectoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[DirectoryUser]


class BalanceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    balance: int

    @classmethod
    def from_account(cls, account: Account) -> "BalanceResponse":
        return cls(balance=account.balance)


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    detail carries field-level entries for validation errors and is omitted
    (None) otherwise.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
