"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_identity is the mapper. Lifecycle and route code never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  username, email, phone and membership_no carry UNIQUE constraints. The
  lifecycle also pre-checks with find_conflict() so the common case gets a
  clean DuplicateIdentity; the constraints catch the concurrent-insert race.

Atomicity:
  Every mutation is one UPDATE/INSERT/DELETE statement on one row. activate()
  is conditional on the pending code still matching, so a code can only be
  consumed once even when two verifications race.

DB URL: settings.database_url (default sqlite file in the working directory).

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from auth.models import Identity

_DEFAULT_DB_URL = "sqlite:///samaj_identity.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(32), nullable=False, unique=True),
    Column("membership_no", String(64), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="member"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("is_blocked", Integer, nullable=False, server_default="0"),
    Column("pending_code", String(16)),  # NULL when no live code
    Column("pending_code_expiry", String(32)),  # NULL together with pending_code
    Column("profile_photo", Text),
    Column("created_at", String(32), nullable=False),
)

# Columns update_identity() accepts. Anything else is a programming error.
_UPDATABLE = {
    "username",
    "email",
    "phone",
    "membership_no",
    "hashed_password",
    "role",
    "is_blocked",
    "profile_photo",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records.

    Usage:
        store = IdentityStore("sqlite:///:memory:")
        identity_id = store.create_identity(Identity(...))
        identity = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_identities(self) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().limit(1)).fetchone()
        return row is not None

    def get_by_id(self, identity_id: int) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_email(self, email: str) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_identifier(self, identifier: str) -> Identity | None:
        """Look up an identity by email or phone -- the two login identifiers."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _identities.select().where(
                    or_(_identities.c.email == identifier, _identities.c.phone == identifier)
                )
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def find_conflict(
        self,
        *,
        username: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        membership_no: str | None = None,
        exclude_id: int | None = None,
    ) -> Identity | None:
        """Return any identity already holding one of the given unique values.

        None-valued arguments are skipped. exclude_id lets a profile edit
        ignore the identity being edited.
        """
        clauses = []
        if username is not None:
            clauses.append(_identities.c.username == username)
        if email is not None:
            clauses.append(_identities.c.email == email)
        if phone is not None:
            clauses.append(_identities.c.phone == phone)
        if membership_no is not None:
            clauses.append(_identities.c.membership_no == membership_no)
        if not clauses:
            return None
        query = _identities.select().where(or_(*clauses))
        if exclude_id is not None:
            query = query.where(_identities.c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(query.limit(1)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self) -> list[Identity]:
        """Return all identities, oldest first. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_identities.select().order_by(_identities.c.id)).fetchall()
        return [_row_to_identity(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if a unique field collides.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.insert().values(
                    username=identity.username,
                    email=identity.email,
                    phone=identity.phone,
                    membership_no=identity.membership_no,
                    hashed_password=identity.hashed_password,
                    role=identity.role,
                    is_verified=1 if identity.is_verified else 0,
                    is_blocked=1 if identity.is_blocked else 0,
                    pending_code=identity.pending_code,
                    pending_code_expiry=identity.pending_code_expiry,
                    profile_photo=identity.profile_photo,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def set_pending_code(self, identity_id: int, code: str, expiry: str) -> bool:
        """Store a fresh one-time code, overwriting any previous one."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(pending_code=code, pending_code_expiry=expiry)
            )
            conn.commit()
        return result.rowcount > 0

    def activate(self, identity_id: int, code: str) -> bool:
        """Mark verified and clear the code, only if `code` is still the live one.

        Returns False when the code was already consumed or replaced between
        the caller's read and this write.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where((_identities.c.id == identity_id) & (_identities.c.pending_code == code))
                .values(is_verified=1, pending_code=None, pending_code_expiry=None)
            )
            conn.commit()
        return result.rowcount > 0

    def update_identity(self, identity_id: int, **fields) -> bool:
        """Update mutable fields on an existing identity.

        Accepted fields: see _UPDATABLE. is_blocked must be passed as bool.
        Raises ValueError for unknown fields, sqlalchemy IntegrityError on a
        unique collision. Returns True if a row was updated.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown identity fields: {unknown!r}")
        if not fields:
            return False
        if "is_blocked" in fields:
            fields["is_blocked"] = 1 if fields["is_blocked"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_identities.update().where(_identities.c.id == identity_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_identity(self, identity_id: int) -> bool:
        """Permanently delete an identity. Returns True if deleted.

        Callers must check the admin-protection invariant first; the store
        does not know about roles.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_identities.delete().where(_identities.c.id == identity_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        email=row.email,
        phone=row.phone,
        membership_no=row.membership_no,
        hashed_password=row.hashed_password,
        role=row.role,
        is_verified=bool(row.is_verified),
        is_blocked=bool(row.is_blocked),
        pending_code=row.pending_code,
        pending_code_expiry=row.pending_code_expiry,
        profile_photo=row.profile_photo,
        created_at=row.created_at,
    )
