"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and the flows do the work.

Identity vs login: User.id is the durable identity assigned by the store and
used for every ownership and reference check (tokens, Account.owner_id,
directory exclusion). User.user_id is the human-chosen login string -- unique,
but only ever used to look a user up at signin/signup.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# ---------------------------------------------------------------------------
# Field rules -- shared by api/models.py (Pydantic) and auth/service.py
# ---------------------------------------------------------------------------

NAME_MAX_LENGTH = 50
USER_ID_MIN_LENGTH = 3
USER_ID_MAX_LENGTH = 64
USER_ID_PATTERN = r"^[A-Za-z0-9._@+-]+$"
PASSWORD_MAX_BYTES = 72  # bcrypt rejects longer input


@dataclass
class User:
    """A registered user of the ledger application.

    hashed_password is a bcrypt hash. The plaintext is never stored.
    """

    user_id: str
    first_name: str
    last_name: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class Account:
    """The single balance record owned by a User.

    owner_id references User.id (durable identity), never the mutable login
    string. balance is a non-negative integer in the smallest currency unit.
    """

    owner_id: int
    balance: int
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of a session token -- the request identity."""

    id: int
    user_id: str
    first_name: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class DirectoryEntry:
    """Public view of another user. Never carries secrets."""

    id: int
    first_name: str
    last_name: str
    display_name: str


@dataclass
class SignupResult:
    user: User
    account: Account
    token: str


@dataclass
class SigninResult:
    user: User
    token: str


@dataclass
class UpdateResult:
    """Outcome of a profile update. changed_fields uses wire names (firstName, ...)."""

    changed_fields: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields)
