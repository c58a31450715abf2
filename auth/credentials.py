"""
auth/credentials.py -- Storage for pending one-time codes and reset tokens.

Pattern: Repository + Data Mapper (same as auth/store.py).

Invariants:
  One live PendingOtp per receiver and one live PendingReset per user. Both
  are held by UNIQUE columns and written with a single
  INSERT ... ON CONFLICT DO UPDATE statement, so two concurrent requests for
  the same key can never leave two rows behind. Last writer wins.

  Every row carries expires_at (epoch seconds). Lookups only match rows that
  are still live; purge_expired() trims the rest.

Consume-once:
  delete_otp() / delete_reset() report whether a row was actually removed.
  When two requests race to consume the same code only one sees True.

Inspection:
  get_otp(), count_otps() and get_reset_for_user() are read-only views of
  what is pending, for operators and tests. The auth flows never call them.

Layer rule: no imports from api/, messaging/, media/, or core/.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from auth.models import PendingOtp, PendingReset
from auth.store import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_pending_otps = Table(
    "pending_otps",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("receiver", String(255), nullable=False, unique=True),
    Column("method", String(16), nullable=False),  # "email" or "number"
    Column("code", Integer, nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("expires_at", Float, nullable=False),
)

_pending_resets = Table(
    "pending_resets",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", Float, nullable=False),
)

# Dialects with INSERT ... ON CONFLICT support in SQLAlchemy.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for PendingOtp and PendingReset entities.

    Usage:
        store = CredentialStore("sqlite:///passgate.db")
        store.upsert_otp("a@x.com", "email", 4821, ttl_seconds=600)
        entry = store.find_otp("a@x.com", 4821)
        store.delete_otp(entry.id)
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        dialect = self.engine.dialect.name
        if dialect not in _UPSERT_INSERTS:
            raise ValueError(f"CredentialStore needs ON CONFLICT support; {dialect!r} is not supported")
        self._insert = _UPSERT_INSERTS[dialect]
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    def upsert_otp(self, receiver: str, method: str, code: int, ttl_seconds: int) -> None:
        """Store a code for receiver, replacing any code already pending for it."""
        values = {
            "receiver": receiver,
            "method": method,
            "code": code,
            "updated_at": _now_iso(),
            "expires_at": time.time() + ttl_seconds,
        }
        stmt = self._insert(_pending_otps).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_pending_otps.c.receiver],
            set_={
                "method": stmt.excluded.method,
                "code": stmt.excluded.code,
                "updated_at": stmt.excluded.updated_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def find_otp(self, receiver: str, code: int) -> PendingOtp | None:
        """Return the live entry matching BOTH receiver and code, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _pending_otps.select().where(
                    (_pending_otps.c.receiver == receiver)
                    & (_pending_otps.c.code == code)
                    & (_pending_otps.c.expires_at > time.time())
                )
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def get_otp(self, receiver: str) -> PendingOtp | None:
        """Return the live entry for receiver regardless of code. Inspection API."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _pending_otps.select().where(
                    (_pending_otps.c.receiver == receiver) & (_pending_otps.c.expires_at > time.time())
                )
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def count_otps(self, receiver: str) -> int:
        """Count stored rows for receiver, live or not. Inspection API."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_pending_otps).where(_pending_otps.c.receiver == receiver)
            ).scalar()
        return result or 0

    def delete_otp(self, entry_id: int) -> bool:
        """Remove a consumed code. Returns False if it was already gone."""
        with self.engine.begin() as conn:
            result = conn.execute(_pending_otps.delete().where(_pending_otps.c.id == entry_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def upsert_reset(self, user_id: int, token: str, ttl_seconds: int) -> None:
        """Store a reset token for user_id, superseding any earlier one."""
        stmt = self._insert(_pending_resets).values(
            user_id=user_id,
            token=token,
            created_at=_now_iso(),
            expires_at=time.time() + ttl_seconds,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_pending_resets.c.user_id],
            set_={
                "token": stmt.excluded.token,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def find_reset(self, token: str) -> PendingReset | None:
        """Look up a live reset entry by its token."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _pending_resets.select().where(
                    (_pending_resets.c.token == token) & (_pending_resets.c.expires_at > time.time())
                )
            ).fetchone()
        return _row_to_reset(row) if row is not None else None

    def get_reset_for_user(self, user_id: int) -> PendingReset | None:
        """Return the live reset entry owned by user_id, if any. Inspection API."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _pending_resets.select().where(
                    (_pending_resets.c.user_id == user_id) & (_pending_resets.c.expires_at > time.time())
                )
            ).fetchone()
        return _row_to_reset(row) if row is not None else None

    def delete_reset(self, entry_id: int) -> bool:
        """Remove a used reset entry. Returns False if it was already gone."""
        with self.engine.begin() as conn:
            result = conn.execute(_pending_resets.delete().where(_pending_resets.c.id == entry_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete every expired code and reset token. Returns rows removed."""
        now = time.time()
        with self.engine.begin() as conn:
            otps = conn.execute(_pending_otps.delete().where(_pending_otps.c.expires_at <= now))
            resets = conn.execute(_pending_resets.delete().where(_pending_resets.c.expires_at <= now))
        return otps.rowcount + resets.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_otp(row) -> PendingOtp:
    return PendingOtp(
        id=row.id,
        receiver=row.receiver,
        method=row.method,
        code=row.code,
        updated_at=row.updated_at,
        expires_at=row.expires_at,
    )


def _row_to_reset(row) -> PendingReset:
    return PendingReset(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
