"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository (Session Store
Adapter); _row_to_* functions are the mappers. Managers and route code never
touch SQL directly.

Concurrency:
  Many requests run against the same database at once, so every mutation is a
  single statement or a single transaction -- never a read-modify-write spread
  over separate connections:
    - sessions: plain INSERT guarded by UNIQUE(selector). A collision raises
      IntegrityError and the caller retries with a fresh selector.
    - logout / expiry: one DELETE, rowcount returned.
    - linking attempts: initiate replaces the identity's row inside one
      transaction; consume_attempt() selects and deletes inside one
      transaction and only returns the attempt if its own DELETE removed the
      row, so a state is consumed at most once even under concurrent callbacks.
    - ownership edges: UNIQUE(user_id, circle_id); a duplicate insert is
      reported as "already present", which makes re-linking idempotent.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The validator digest is the only session secret stored; see auth/models.py.

Each method acquires a connection in a `with` block, so the handle is
released on every exit path, including exceptions.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Credential, Identity, LinkingAttempt, SessionRecord, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

# Keep in step with _SELECTOR_MAX_LENGTH in core/config.py.
SELECTOR_COLUMN_WIDTH = 32

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("handle", String(20), nullable=False, unique=True),
    Column("nickname", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("hashed_password", String(128), nullable=False),  # argon2id encoding
    Column("role", String(20), nullable=False, server_default="user"),
    Column("external_handle", String(64)),  # linked Twitter/X username
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("selector", String(SELECTOR_COLUMN_WIDTH), nullable=False, unique=True),
    Column("hashed_validator", String(64), nullable=False),  # SHA-256 hex
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires", String(32)),  # NULL = persistent session
)

_user_circles = Table(
    "user_circles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("circle_id", Integer, nullable=False),
    UniqueConstraint("user_id", "circle_id", name="uq_user_circle"),
)

_oauth_attempts = Table(
    "oauth_attempts",
    _metadata,
    # One outstanding attempt per identity: user_id is the primary key.
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("state", String(64), nullable=False, unique=True),
    Column("code_verifier", String(128), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Read-only slice of the catalog: artists declare an external account URL and
# belong to circles. The OAuth linking rule matches against these rows.
_artists = Table(
    "artists",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("account_url", String(255)),
)

_circle_artists = Table(
    "circle_artists",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("circle_id", Integer, nullable=False),
    Column("artist_id", Integer, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON makes the ON DELETE CASCADE
    clauses effective.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Fixed-width ISO 8601 UTC so stored timestamps compare as strings."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, sessions, ownership edges, and linking attempts.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(handle="alice", nickname="Alice", email="a@x", hashed_password=h))
        identity = store.get_identity(uid)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the handle already exists.
        Callers catch it as the signal that a concurrent request won the race.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    handle=user.handle,
                    nickname=user.nickname,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    external_handle=user.external_handle,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def handle_exists(self, handle: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.handle == handle)).fetchone()
        return row is not None

    def get_by_handle(self, handle: str) -> User | None:
        """Look up a user by exact handle (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.handle == handle)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_credential(self, handle: str) -> Credential | None:
        """Return the credential for a handle, or None. Used only by login."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.id, _users.c.hashed_password).where(_users.c.handle == handle)
            ).fetchone()
        return Credential(user_id=row.id, password_hash=row.hashed_password) if row is not None else None

    def get_identity(self, user_id: int) -> Identity | None:
        """Resolve a user and its ownership edges in one connection."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            circles = conn.execute(
                select(_user_circles.c.circle_id).where(_user_circles.c.user_id == user_id)
            ).fetchall()
        return Identity(
            id=row.id,
            handle=row.handle,
            nickname=row.nickname,
            email=row.email,
            role=row.role,
            circles=frozenset(c.circle_id for c in circles),
            external_handle=row.external_handle,
        )

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: nickname, email, role, hashed_password, external_handle.
        The handle is immutable. Returns True if a row was updated.
        """
        unknown = set(fields) - {"nickname", "email", "role", "hashed_password", "external_handle"}
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and everything hanging off it in one transaction.

        Sessions, ownership edges and pending linking attempts are removed
        explicitly as well as by the foreign keys' ON DELETE CASCADE, so the
        cascade holds on databases where FK enforcement is off.
        """
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.execute(_user_circles.delete().where(_user_circles.c.user_id == user_id))
            conn.execute(_oauth_attempts.delete().where(_oauth_attempts.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, record: SessionRecord) -> int:
        """Insert a session row. Raises IntegrityError on a selector collision."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    selector=record.selector,
                    hashed_validator=record.hashed_validator,
                    user_id=record.user_id,
                    expires=record.expires,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_session(self, selector: str) -> SessionRecord | None:
        """Look up a session by selector. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.selector == selector)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, selector: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.selector == selector))
            conn.commit()
        return result.rowcount

    def delete_sessions_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def delete_expired_sessions(self, now_iso: str) -> int:
        """Delete every non-persistent session whose expiry is before now_iso."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where(_sessions.c.expires.is_not(None) & (_sessions.c.expires < now_iso))
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Ownership edges
    # ------------------------------------------------------------------

    def grant_circle(self, user_id: int, circle_id: int) -> bool:
        """Add an ownership edge. Returns False if the edge already existed."""
        try:
            with self.engine.begin() as conn:
                conn.execute(_user_circles.insert().values(user_id=user_id, circle_id=circle_id))
        except IntegrityError:
            return False
        return True

    def revoke_circle(self, user_id: int, circle_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_circles.delete().where(
                    (_user_circles.c.user_id == user_id) & (_user_circles.c.circle_id == circle_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # OAuth linking attempts
    # ------------------------------------------------------------------

    def save_attempt(self, attempt: LinkingAttempt) -> None:
        """Store a pending attempt, replacing any earlier one for the same user."""
        with self.engine.begin() as conn:
            conn.execute(_oauth_attempts.delete().where(_oauth_attempts.c.user_id == attempt.user_id))
            conn.execute(
                _oauth_attempts.insert().values(
                    user_id=attempt.user_id,
                    state=attempt.state,
                    code_verifier=attempt.code_verifier,
                    created_at=attempt.created_at or _now_iso(),
                )
            )

    def consume_attempt(self, state: str) -> LinkingAttempt | None:
        """Fetch and delete the attempt for `state` in one transaction.

        Returns None if no attempt exists or a concurrent callback deleted it
        first. Only the caller whose DELETE removed the row gets the attempt.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_oauth_attempts.select().where(_oauth_attempts.c.state == state)).fetchone()
            if row is None:
                return None
            result = conn.execute(_oauth_attempts.delete().where(_oauth_attempts.c.state == state))
            if result.rowcount != 1:
                return None
        return _row_to_attempt(row)

    def delete_expired_attempts(self, cutoff_iso: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_oauth_attempts.delete().where(_oauth_attempts.c.created_at < cutoff_iso))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Declared external accounts (catalog slice)
    # ------------------------------------------------------------------

    def add_artist(self, name: str, account_url: str | None, circle_ids: list[int]) -> int:
        """Insert an artist and its circle memberships. Used by seeding and tests."""
        with self.engine.begin() as conn:
            result = conn.execute(_artists.insert().values(name=name, account_url=account_url))
            artist_id = result.inserted_primary_key[0]
            for circle_id in circle_ids:
                conn.execute(_circle_artists.insert().values(circle_id=circle_id, artist_id=artist_id))
        return artist_id

    def find_circles_by_account_urls(self, urls: list[str]) -> list[int]:
        """Return the circles of every artist whose account_url is exactly one of `urls`."""
        if not urls:
            return []
        query = (
            select(_circle_artists.c.circle_id)
            .join(_artists, _artists.c.id == _circle_artists.c.artist_id)
            .where(_artists.c.account_url.in_(urls))
            .distinct()
            .order_by(_circle_artists.c.circle_id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [r.circle_id for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        handle=row.handle,
        nickname=row.nickname,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        external_handle=row.external_handle,
        created_at=row.created_at,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        selector=row.selector,
        hashed_validator=row.hashed_validator,
        user_id=row.user_id,
        expires=row.expires,
    )


def _row_to_attempt(row) -> LinkingAttempt:
    return LinkingAttempt(
        user_id=row.user_id,
        state=row.state,
        code_verifier=row.code_verifier,
        created_at=row.created_at,
    )
