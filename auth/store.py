"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and auth events.

Pattern: Repository + Data Mapper.
PrincipalStore is the repository; _row_to_principal / _row_to_event are the
mappers. The ledger, the verifier and the routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The store never sees plaintext secrets -- only bcrypt hashes.

Timeouts:
  Every connection carries an explicit timeout so no store call blocks
  indefinitely. SQLite gets it as the busy timeout, PostgreSQL as a
  statement_timeout, MySQL as socket read/write timeouts; network databases
  also get connect_timeout plus the pool checkout timeout. Callers treat any
  SQLAlchemyError as infrastructure failure and fail closed.

Lockout trigger:
  record_failed_attempt() increments failed_attempts with an in-SQL
  expression and sets locked_until in the same transaction whenever the
  stored counter has reached the ceiling. Two concurrent writers that both
  cross the threshold both write a lock; neither can lose it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import math
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine, make_url

from auth.identity import normalize_identifier
from auth.models import AuthEvent, Principal
from core.clock import Clock, parse_iso, utcnow

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_principals = Table(
    "principals",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False, unique=True),  # normalized
    Column("hashed_secret", Text),
    Column("role", String(30), nullable=False, server_default="admin"),
    Column("failed_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),  # ISO 8601 UTC, NULL = not locked
    Column("last_login_at", String(32)),
    Column("last_login_origin", String(255)),
    Column("created_at", String(32), nullable=False),
)

_auth_events = Table(
    "auth_events",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False),
    Column("action", String(20), nullable=False),
    Column("outcome", String(40), nullable=False),
    Column("origin", String(255), nullable=False, server_default="unknown"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by ledger writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _connect_args(db_url: str, timeout: float) -> dict:
    """DBAPI connect arguments that bound every store call by `timeout` seconds.

    Each dialect spells it differently: SQLite as the busy timeout, PostgreSQL
    as a server-side statement_timeout, MySQL as socket read/write timeouts.
    The connect timeout covers establishing new pooled connections.
    """
    backend = make_url(db_url).get_backend_name()
    seconds = max(1, math.ceil(timeout))
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}
    if backend == "postgresql":
        return {"connect_timeout": seconds, "options": f"-c statement_timeout={int(timeout * 1000)}"}
    if backend in ("mysql", "mariadb"):
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return {"connect_timeout": seconds}


def _engine_for(db_url: str, timeout: float) -> Engine:
    connect_args = _connect_args(db_url, timeout)
    if make_url(db_url).get_backend_name() == "sqlite":
        engine = create_engine(db_url, connect_args=connect_args)
        event.listen(engine, "connect", _set_wal_mode)
        return engine
    return create_engine(
        db_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        pool_timeout=timeout,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PrincipalStore:
    """Repository for Principal and AuthEvent records.

    Usage:
        store = PrincipalStore("sqlite:///admingate.db")
        store.create_principal(Principal(identifier="a@x.com", role="admin", hashed_secret=hash_secret("s3cret")))
        principal = store.get_by_identifier("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 3.0, clock: Clock = utcnow) -> None:
        self._clock = clock
        self.engine: Engine = _engine_for(db_url, timeout)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Round-trip a trivial query. Raises SQLAlchemyError if the store is unreachable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Principal queries
    # ------------------------------------------------------------------

    def has_principals(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_principals)).scalar()
        return (result or 0) > 0

    def create_principal(self, principal: Principal) -> int:
        """Insert a principal and return its assigned database ID.

        The identifier is normalized before insert. Raises
        sqlalchemy.exc.IntegrityError if the identifier already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _principals.insert().values(
                    identifier=normalize_identifier(principal.identifier),
                    hashed_secret=principal.hashed_secret,
                    role=principal.role,
                    failed_attempts=principal.failed_attempts,
                    locked_until=_iso(principal.locked_until),
                    created_at=_iso(self._clock()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_identifier(self, identifier: str) -> Principal | None:
        """Look up a principal by normalized identifier. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _principals.select().where(_principals.c.identifier == normalize_identifier(identifier))
            ).fetchone()
        return _row_to_principal(row) if row is not None else None

    def get_by_id(self, principal_id: int) -> Principal | None:
        with self.engine.connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    # ------------------------------------------------------------------
    # Lockout ledger writes
    # ------------------------------------------------------------------

    def record_failed_attempt(self, principal_id: int, ceiling: int, lock_until: datetime) -> Principal | None:
        """Atomically count one failed attempt and lock once the ceiling is reached.

        Both statements run in one transaction and are committed before
        returning, so the ledger reflects the attempt even if the process
        dies right after. Returns the principal as stored after the write.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _principals.update()
                .where(_principals.c.id == principal_id)
                .values(failed_attempts=_principals.c.failed_attempts + 1)
            )
            conn.execute(
                _principals.update()
                .where((_principals.c.id == principal_id) & (_principals.c.failed_attempts >= ceiling))
                .values(locked_until=_iso(lock_until))
            )
            row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
            conn.commit()
        return _row_to_principal(row) if row is not None else None

    def record_successful_login(self, principal_id: int, at: datetime, origin: str) -> None:
        """Zero the failure counter, clear any lock and stamp last-login metadata."""
        with self.engine.connect() as conn:
            conn.execute(
                _principals.update()
                .where(_principals.c.id == principal_id)
                .values(
                    failed_attempts=0,
                    locked_until=None,
                    last_login_at=_iso(at),
                    last_login_origin=origin,
                )
            )
            conn.commit()

    def clear_lockout(self, principal_id: int) -> bool:
        """Operator unlock: zero the counter and clear locked_until. Returns False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _principals.update()
                .where(_principals.c.id == principal_id)
                .values(failed_attempts=0, locked_until=None)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Auth events
    # ------------------------------------------------------------------

    def record_event(self, auth_event: AuthEvent) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _auth_events.insert().values(
                    identifier=auth_event.identifier,
                    action=auth_event.action,
                    outcome=auth_event.outcome,
                    origin=auth_event.origin,
                    created_at=_iso(self._clock()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_events(self, identifier: str | None = None, limit: int = 50) -> list[AuthEvent]:
        """Return the most recent events (newest first), optionally for one identifier."""
        query = _auth_events.select()
        if identifier is not None:
            query = query.where(_auth_events.c.identifier == normalize_identifier(identifier))
        query = query.order_by(_auth_events.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_event(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        identifier=row.identifier,
        hashed_secret=row.hashed_secret,
        role=row.role,
        failed_attempts=row.failed_attempts or 0,
        locked_until=parse_iso(row.locked_until),
        last_login_at=parse_iso(row.last_login_at),
        last_login_origin=row.last_login_origin,
        created_at=row.created_at,
    )


def _row_to_event(row) -> AuthEvent:
    return AuthEvent(
        id=row.id,
        identifier=row.identifier,
        action=row.action,
        outcome=row.outcome,
        origin=row.origin,
        created_at=row.created_at,
    )
