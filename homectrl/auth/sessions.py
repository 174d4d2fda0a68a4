"""SessionManager — issue, validate, revoke and sweep login sessions.

Session lifecycle: created → active → (expired | revoked)

  - active/created are the same stored row; a session is active iff now < expires_at
  - expired is derived at read time, never stored
  - revoked is row deletion

Expiry is checked lazily inside validate(). sweep_expired() only reclaims
storage; validate() is correct whether or not a sweep has ever run, and never
extends a session's lifetime.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import aiosqlite

from homectrl.auth.keys import generate_token
from homectrl.errors import PersistenceError, ValidationError
from homectrl.storage.database import Database
from homectrl.utils.clock import Clock, from_db, to_db, utc_now
from homectrl.utils.logger import get_logger, mask_secret

logger = get_logger(__name__)


@dataclass
class Session:
    """A time-bounded, identity-bearing login session."""

    id: int
    session_id: str
    username: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "Session":
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            username=row["username"],
            created_at=from_db(row["created_at"]),  # type: ignore[arg-type]
            expires_at=from_db(row["expires_at"]),  # type: ignore[arg-type]
        )

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class SessionManager:
    """Persisted sessions (sessions table)."""

    def __init__(self, db: Database, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    async def create(self, username: str, ttl: timedelta) -> str:
        """Persist a new session for ``username`` and return its token.

        Raises:
            ValidationError: If ``ttl`` is not positive.
            PersistenceError: On storage failure.
        """
        if ttl <= timedelta(0):
            raise ValidationError("Session TTL must be positive")

        token = generate_token()
        now = self._clock()
        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO sessions (session_id, username, created_at, expires_at) "
                    "VALUES (?, ?, ?, ?)",
                    (token, username, to_db(now), to_db(now + ttl)),
                )
        except aiosqlite.IntegrityError as exc:
            raise PersistenceError("Failed to create session") from exc

        logger.info("Session created", username=username, ttl_s=int(ttl.total_seconds()))
        return token

    async def get(self, token: str) -> Optional[Session]:
        """Return the stored session row, expired or not."""
        if not token:
            return None
        row = await self._db.fetchone(
            "SELECT id, session_id, username, created_at, expires_at "
            "FROM sessions WHERE session_id = ?",
            (token,),
        )
        return Session.from_row(row) if row is not None else None

    async def validate(self, token: str) -> Optional[str]:
        """Return the session's username if ``token`` is active, else None.

        Fails closed: empty, unknown and expired tokens all return None.
        Expiry is compared against the current time now, at validation.
        """
        session = await self.get(token)
        if session is None:
            return None
        if not session.is_active(self._clock()):
            logger.debug("Expired session presented", token=mask_secret(token))
            return None
        return session.username

    async def revoke(self, token: str) -> None:
        """Delete the session. Absent tokens are a no-op."""
        if not token:
            return
        deleted = await self._db.execute(
            "DELETE FROM sessions WHERE session_id = ?", (token,)
        )
        if deleted:
            logger.info("Session revoked", token=mask_secret(token))

    async def sweep_expired(self) -> int:
        """Bulk-delete sessions whose expires_at has been reached. Returns the count."""
        now = self._clock()
        count = await self._db.execute(
            "DELETE FROM sessions WHERE expires_at <= ?", (to_db(now),)
        )
        if count > 0:
            logger.info("session_sweep_complete", deleted_count=count)
        return count


# ─── Background sweep task ───────────────────────────────────────────────────


async def run_session_sweeper(manager: SessionManager, interval_seconds: float) -> None:
    """Background asyncio task: call sweep_expired() every ``interval_seconds``.

    Registered with asyncio.create_task() during lifespan startup and
    cancelled on shutdown. Errors are logged and the next tick retries.
    """
    logger.info("session_sweeper_started", interval_seconds=interval_seconds)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await manager.sweep_expired()
        except asyncio.CancelledError:
            logger.info("session_sweeper_cancelled")
            raise
        except Exception as exc:
            logger.error(
                "session_sweep_error",
                error=str(exc),
                error_type=type(exc).__name__,
            )
