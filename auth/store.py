"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as ledger/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The password column holds the opaque credential blob from
  auth/credentials.py. This module never inspects it.

Timestamps:
  created_at is set once on insert. updated_at is stamped on every write
  that goes through this store, so callers never manage it themselves.

Layer rule: no imports from api/ or ledger/.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, LargeBinary, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings

logger = logging.getLogger("pocketbook.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", LargeBinary),  # credential blob
    Column("status", String(10), nullable=False, server_default="init"),
    Column("settings", Text),  # JSON object
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="me@example.com", password=encode("secret-pass")))
        user = store.get_by_email("me@example.com")
        store.close()
    """

    # Fields update_user() accepts. Anything else is a programming error.
    _MUTABLE_FIELDS: set = {"status", "settings", "password"}

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().auth_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (POST /auth/register) translate that into a 409 -- the
        UNIQUE index is the source of truth, not a pre-insert lookup, so two
        concurrent registrations cannot both succeed.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    password=user.password,
                    status=user.status,
                    settings=json.dumps(user.settings or {}),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        logger.info("Created user id=%d", user_id)
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: status, settings (dict), password
        (credential blob). Unknown fields raise ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "settings" in fields:
            fields["settings"] = json.dumps(fields["settings"] or {})
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def set_password(self, user_id: int, blob: bytes) -> bool:
        """Replace the user's credential blob wholesale."""
        return self.update_user(user_id, password=blob)

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Dependent ledger data is not touched here. Use
        ledger.lifecycle.delete_user(), which removes dependents first and
        calls this last.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password=bytes(row.password) if row.password is not None else None,
        status=row.status,
        settings=json.loads(row.settings) if row.settings else {},
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
    )
