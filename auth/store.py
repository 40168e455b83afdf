"""
auth/store.py -- SQLAlchemy Core persistence layer for users and accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_account are the mappers.
Flow and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL. Directory search
  filters go through ColumnOperators.contains(autoescape=True) so user input
  containing % or _ matches literally instead of acting as a wildcard.

Integrity:
  users.user_id is UNIQUE -- the authoritative duplicate check. Callers may
  check get_by_user_id() first for a friendlier path, but a concurrent signup
  can still lose the race; create_user_with_account() converts the resulting
  IntegrityError into DuplicateIdentity.

  accounts.owner_id is UNIQUE with a foreign key to users.id, so a user can
  never own two accounts. The user and account rows are written inside one
  transaction (engine.begin()), so a failure between the two inserts rolls
  both back instead of leaving a user without an account.

DB URL: Settings.database_url (default: paylink.db at the project root).

Layer rule: no imports from api/.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateIdentity
from auth.models import Account, User
from core.config import get_settings, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), nullable=False, unique=True),  # login string
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("hashed_password", Text, nullable=False),  # bcrypt
    Column("created_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False, unique=True),
    Column("balance", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
)

# Columns a profile update may touch. Anything else is a programming error.
_UPDATABLE_FIELDS = frozenset({"first_name", "last_name", "hashed_password"})


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is OFF by default in SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Account entities.

    Usage:
        store = UserStore()
        uid = store.create_user_with_account(User(...), balance=4200)
        user = store.get_by_user_id("ann1")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user_with_account(self, user: User, balance: int) -> int:
        """Insert a user and its account atomically; return the new user's id.

        Raises DuplicateIdentity if user.user_id is already taken. Raises
        ValueError for a negative balance before touching the database.
        """
        if balance < 0:
            raise ValueError("Account balance must be non-negative.")
        created_at = now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        user_id=user.user_id,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        hashed_password=user.hashed_password,
                        created_at=created_at,
                    )
                )
                new_id = result.inserted_primary_key[0]
                conn.execute(
                    _accounts.insert().values(
                        owner_id=new_id,
                        balance=balance,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            # The only UNIQUE constraint reachable with a fresh users.id is user_id.
            raise DuplicateIdentity() from exc
        return new_id

    def get_by_user_id(self, user_id: str) -> User | None:
        """Look up a user by exact login string (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.user_id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, id: int) -> User | None:
        """Look up a user by durable identity. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, id: int, **fields) -> bool:
        """Set the given fields on one user.

        Accepted fields: first_name, last_name, hashed_password. Fields not
        passed are left untouched -- this is a partial update, never a
        replace. Unknown keys raise ValueError (fail fast, and keeps column
        names out of caller control).

        Returns True if a row was updated, False if id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == id).values(**fields))
        return result.rowcount > 0

    def search_users(self, name_filter: str | None, exclude_id: int) -> list[User]:
        """Return users other than exclude_id, optionally filtered by name.

        The filter is a case-insensitive substring match against first OR
        last name. None or an empty string returns every other user.
        """
        query = _users.select().where(_users.c.id != exclude_id)
        if name_filter:
            needle = name_filter.lower()
            query = query.where(
                or_(
                    func.lower(_users.c.first_name).contains(needle, autoescape=True),
                    func.lower(_users.c.last_name).contains(needle, autoescape=True),
                )
            )
        query = query.order_by(_users.c.first_name, _users.c.last_name, _users.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def get_account(self, owner_id: int) -> Account | None:
        """Return the account owned by the given user id, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.owner_id == owner_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        user_id=row.user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        owner_id=row.owner_id,
        balance=row.balance,
        created_at=row.created_at,
    )
