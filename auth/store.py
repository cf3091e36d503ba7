"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
and _user_to_values are the mappers. Service and route code never touches SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  email is UNIQUE and always stored lower-cased, so "A@x.com" and "a@x.com"
  collide at the storage layer. The IntegrityError is surfaced to callers as
  DuplicateIdentity -- a concurrent duplicate registration that slips past the
  service's pre-check still fails cleanly.

  google_id is UNIQUE too. SQLite (and Postgres) treat NULLs as distinct, so
  any number of password-only users can coexist with a NULL google_id.

DB path: auth/satsang_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateIdentity
from auth.models import Role, User
from auth.validation import normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for Google-only users
    Column("full_name", String(100), nullable=False),
    Column("spiritual_name", String(100)),
    Column("phone", String(40)),
    Column("introduction", Text),
    Column("bio", Text),
    Column("avatar", Text),
    Column("role", String(20), nullable=False, server_default=Role.LEARNER.value, index=True),
    Column("google_id", String(255), unique=True),
    Column("is_approved", Boolean, nullable=False, server_default="0", index=True),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("reset_password_token", String(64), index=True),  # SHA-256 hex
    Column("reset_password_expire", String(40)),
    Column("last_active", String(40)),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

# Columns save() may write. id and created_at are immutable after insert.
_MUTABLE_FIELDS = (
    "email",
    "password_hash",
    "full_name",
    "spiritual_name",
    "phone",
    "introduction",
    "bio",
    "avatar",
    "role",
    "google_id",
    "is_approved",
    "is_active",
    "is_email_verified",
    "reset_password_token",
    "reset_password_expire",
    "last_active",
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed while a write is in flight.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create(User(email="a@x.com", full_name="A", password_hash=digest))
        same = store.find_by_email("A@X.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new identity and return it as stored (id and timestamps set).

        Raises:
            DuplicateIdentity: email (case-insensitively) or google_id already exists.
            ValueError: neither a password hash nor a google_id is present.
        """
        if user.password_hash is None and user.google_id is None:
            raise ValueError("A user needs a password hash or a google_id")
        now = _now_iso()
        values = _user_to_values(user)
        values.update(created_at=now, updated_at=now, last_active=user.last_active or now)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.insert().values(**values))
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateIdentity() from exc
        return replace(
            user,
            id=user_id,
            email=values["email"],
            created_at=now,
            updated_at=now,
            last_active=values["last_active"],
        )

    def save(self, user: User, *fields: str) -> bool:
        """Persist the named mutable fields of user in a single UPDATE.

        Only the listed columns are written, so a caller holding a stale copy
        of the identity cannot undo a concurrent change to any other column.
        Password hash and reset-token fields passed together land completely
        or not at all. Returns False if the id is unknown.

        Raises:
            ValueError: no fields named, or a field that is not mutable.
        """
        if user.id is None:
            raise ValueError("Cannot save a user without an id")
        if not fields:
            raise ValueError("save() needs at least one field to write")
        unknown = set(fields) - set(_MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not a mutable user field: {', '.join(sorted(unknown))}")
        now = _now_iso()
        values = {field: value for field, value in _user_to_values(user).items() if field in fields}
        values["updated_at"] = now
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
        except IntegrityError as exc:
            raise DuplicateIdentity() from exc
        if "email" in values:
            user.email = values["email"]
        user.updated_at = now
        return result.rowcount > 0

    def touch_last_active(self, user_id: int) -> None:
        """Stamp the current UTC time as last_active without touching anything else."""
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_active=_now_iso()))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        return self._find_one(_users.c.email == normalize_email(email))

    def find_by_id(self, user_id: int) -> User | None:
        return self._find_one(_users.c.id == user_id)

    def find_by_google_id(self, google_id: str) -> User | None:
        return self._find_one(_users.c.google_id == google_id)

    def find_by_reset_token(self, token_hash: str) -> User | None:
        """Look up the identity holding this reset-token hash. Expiry is the caller's check."""
        return self._find_one(_users.c.reset_password_token == token_hash)

    def list_users(self, approved: bool | None = None) -> list[User]:
        """Return users newest first, optionally filtered by approval state."""
        query = _users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc())
        if approved is not None:
            query = query.where(_users.c.is_approved == approved)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_active_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == Role.ADMIN.value) & (_users.c.is_active == True))  # noqa: E712
            ).scalar()
        return result or 0

    def get_stats(self) -> dict[str, int]:
        """Return headline counts for the admin dashboard."""
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_users)).scalar() or 0
            approved = (
                conn.execute(
                    select(func.count()).select_from(_users).where(_users.c.is_approved == True)  # noqa: E712
                ).scalar()
                or 0
            )
            by_role = dict(conn.execute(select(_users.c.role, func.count()).group_by(_users.c.role)).fetchall())
        return {
            "total_users": total,
            "approved_users": approved,
            "pending_users": total - approved,
            "admins": by_role.get(Role.ADMIN.value, 0),
            "teachers": by_role.get(Role.TEACHER.value, 0),
            "learners": by_role.get(Role.LEARNER.value, 0),
        }

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()

    def _find_one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_to_values(user: User) -> dict:
    values = {field: getattr(user, field) for field in _MUTABLE_FIELDS}
    values["email"] = normalize_email(user.email)
    values["role"] = Role(user.role).value
    return values


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        spiritual_name=row.spiritual_name,
        phone=row.phone,
        introduction=row.introduction,
        bio=row.bio,
        avatar=row.avatar,
        role=Role(row.role),
        google_id=row.google_id,
        is_approved=bool(row.is_approved),
        is_active=bool(row.is_active),
        is_email_verified=bool(row.is_email_verified),
        reset_password_token=row.reset_password_token,
        reset_password_expire=row.reset_password_expire,
        last_active=row.last_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
