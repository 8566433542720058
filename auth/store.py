"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore (credentials) and SessionStore (rotation chain) are the
repositories; _row_to_user / _row_to_session are the mappers. The session
manager and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  token_version is bumped with a single UPDATE ... SET token_version =
  token_version + 1, never read-modify-write, so concurrent revokes each
  count exactly once.

  rotate() runs the revoke of the old row and the insert of its successor in
  one engine.begin() transaction. The revoke is a conditional UPDATE
  (WHERE jti = :jti AND revoked_at IS NULL); when two refreshes race on the
  same jti only one UPDATE matches a row. The loser sees rowcount 0 and
  returns before inserting, so no successor is written. Any exception after
  the UPDATE rolls the whole transaction back.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision) so lexical comparison in SQL matches chronological order.

Layer rule: no imports from api/, categories/ or tasks/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import Platform, Session, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("jti", String(36), nullable=False, unique=True),
    Column("refresh_hash", Text, nullable=False),
    Column("platform", String(10), nullable=False),  # "WEB" | "MOBILE"
    Column("device_label", String(255)),
    Column("user_agent", Text),
    Column("ip", String(45)),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("expires_at", String(32), nullable=False),
    Column("revoked_at", String(32)),  # NULL = not revoked
    Column("replaced_by_jti", String(36)),  # NULL until rotated forward
    Column("created_at", String(32), nullable=False),
    Column("last_used_at", String(32), nullable=False),
)

Index("ix_sessions_user_id_revoked_at", _sessions.c.user_id, _sessions.c.revoked_at)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Build an Engine for db_url and create any missing tables.

    Shared by UserStore, SessionStore and CategoryStore so all three apply
    the same SQLite connection policy.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    # Naive datetimes are taken as UTC, never as server-local time.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _default_db_url() -> str:
    return get_settings().database_url


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(email="a@x.com", hashed_password=hash_password("pw123456")))
        store.bump_token_version(user.id)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or _default_db_url())

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        The email is lowercased here as well as by callers, so the UNIQUE
        constraint is always checked against the normalized form.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = to_iso(_now())
        user_id = user.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email.strip().lower(),
                    hashed_password=user.hashed_password,
                    token_version=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_by_id(user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive via normalization). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def bump_token_version(self, user_id: str) -> int | None:
        """Atomically increment token_version and return the new value.

        Returns None if user_id does not exist.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(token_version=_users.c.token_version + 1, updated_at=to_iso(_now()))
            )
            if result.rowcount == 0:
                return None
            return conn.execute(select(_users.c.token_version).where(_users.c.id == user_id)).scalar()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session rows (one per rotation-chain step).

    Rows are never deleted here. Cleanup of expired or revoked rows is a
    housekeeping job outside this store.
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or _default_db_url())

    def create_session(self, session: Session) -> Session:
        """Insert a chain root (a session with no predecessor) and return it."""
        with self.engine.begin() as conn:
            _insert_session(conn, session)
        return self.get_by_jti(session.jti)

    def get_by_jti(self, jti: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.jti == jti)).fetchone()
        return _row_to_session(row) if row is not None else None

    def rotate(self, old_jti: str, successor: Session) -> Session | None:
        """Revoke old_jti and insert successor in a single transaction.

        Returns the stored successor, or None when old_jti was no longer
        unrevoked at write time (a concurrent rotation or logout got there
        first). Nothing is written in the None case.
        """
        now = to_iso(_now())
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.jti == old_jti) & (_sessions.c.revoked_at.is_(None)))
                .values(revoked_at=now, replaced_by_jti=successor.jti)
            )
            if result.rowcount == 0:
                return None
            _insert_session(conn, successor)
        return self.get_by_jti(successor.jti)

    def revoke(self, jti: str) -> bool:
        """Terminal revoke (logout). Returns False if the row was missing or already revoked."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.jti == jti) & (_sessions.c.revoked_at.is_(None)))
                .values(revoked_at=to_iso(_now()))
            )
        return result.rowcount > 0

    def touch(self, jti: str) -> None:
        """Stamp last_used_at after a successful authentication."""
        with self.engine.begin() as conn:
            conn.execute(_sessions.update().where(_sessions.c.jti == jti).values(last_used_at=to_iso(_now())))

    def list_active(self, user_id: str, token_version: int) -> list[Session]:
        """Return sessions that would still authenticate, newest first.

        revoked_at IS NULL alone is not enough: a revoke-all leaves rows
        unrevoked but minted under an older token_version.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.user_id == user_id)
                    & (_sessions.c.revoked_at.is_(None))
                    & (_sessions.c.expires_at > to_iso(_now()))
                    & (_sessions.c.token_version == token_version)
                )
                .order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def get_chain(self, jti: str) -> list[Session]:
        """Follow replaced_by_jti forward from jti and return every step in order."""
        chain: list[Session] = []
        seen: set[str] = set()
        current = self.get_by_jti(jti)
        while current is not None and current.jti not in seen:
            chain.append(current)
            seen.add(current.jti)
            current = self.get_by_jti(current.replaced_by_jti) if current.replaced_by_jti else None
        return chain

    def close(self) -> None:
        self.engine.dispose()


def _insert_session(conn, session: Session) -> None:
    now = to_iso(_now())
    conn.execute(
        _sessions.insert().values(
            id=session.id or str(uuid.uuid4()),
            user_id=session.user_id,
            jti=session.jti,
            refresh_hash=session.refresh_hash,
            platform=Platform(session.platform).value,
            device_label=session.device_label,
            user_agent=session.user_agent,
            ip=session.ip,
            token_version=session.token_version,
            expires_at=to_iso(session.expires_at),
            revoked_at=None,
            replaced_by_jti=None,
            created_at=now,
            last_used_at=now,
        )
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        token_version=row.token_version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        jti=row.jti,
        refresh_hash=row.refresh_hash,
        platform=Platform(row.platform),
        device_label=row.device_label,
        user_agent=row.user_agent,
        ip=row.ip,
        token_version=row.token_version,
        expires_at=from_iso(row.expires_at),
        revoked_at=from_iso(row.revoked_at),
        replaced_by_jti=row.replaced_by_jti,
        created_at=from_iso(row.created_at),
        last_used_at=from_iso(row.last_used_at),
    )
