"""Database — aiosqlite-backed persistence shared by every home-ctrl store.

Features:
  - Single long-lived connection: opened in initialize(), closed in close()
  - WAL mode: PRAGMA journal_mode=WAL (concurrent readers while writing)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - transaction(): serialises a group of statements behind an asyncio.Lock and
    commits or rolls back as a unit, so a read-modify-write cannot interleave
    with another writer on the same connection
  - Every aiosqlite error surfaces as PersistenceError (IntegrityError on a
    UNIQUE column is left to the caller, which knows whether it is a conflict)

Tables:
  api_keys    — long-lived API keys (unique key)
  sessions    — login sessions (unique session_id)
  key_values  — key-value entries (unique key)
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

import aiosqlite

from homectrl.errors import PersistenceError
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    key         TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    expires_at  TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT NOT NULL UNIQUE,
    username    TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_expires_at
    ON sessions(expires_at);

CREATE TABLE IF NOT EXISTS key_values (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    key         TEXT NOT NULL UNIQUE,
    value       TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'unread'
                CHECK(status IN ('unread', 'read', 'archived')),
    is_hidden   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    CHECK(updated_at >= created_at)
);

CREATE INDEX IF NOT EXISTS idx_key_values_created_at
    ON key_values(created_at DESC);

CREATE INDEX IF NOT EXISTS idx_key_values_status_updated
    ON key_values(status, updated_at);
"""

_SCHEMA_VERSION = 1


class Database:
    """Async SQLite persistence using aiosqlite exclusively.

    Usage:
        db = Database("data/home-ctrl.db")
        await db.initialize()      # raises RuntimeError on schema version mismatch
        async with db.transaction() as conn:
            await conn.execute(...)
        row = await db.fetchone("SELECT ...", (param,))
        await db.close()
    """

    def __init__(self, db_path: str) -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify schema.

        PRAGMA user_version:
          - 0: fresh DB → create schema, set user_version=1
          - 1: compatible schema → CREATE ... IF NOT EXISTS (idempotent)
          - other: RuntimeError, startup refused

        Raises:
            RuntimeError: If the schema version is unsupported.
            PersistenceError: If the file cannot be opened.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL;")

            cursor = await self._db.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
            current_version: int = row[0] if row else 0
        except aiosqlite.Error as exc:
            await self.close()
            raise PersistenceError(f"Failed to open database: {exc}") from exc

        if current_version not in (0, _SCHEMA_VERSION):
            await self.close()
            raise RuntimeError(
                f"Unsupported database schema version: {current_version}. "
                f"Delete {self._db_path} to reset."
            )

        await self._db.executescript(_CREATE_SCHEMA_SQL)
        await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
        await self._db.commit()

        logger.info(
            "database_ready",
            db_path=self._db_path,
            schema_version=_SCHEMA_VERSION,
            created=current_version == 0,
        )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("database_closed", db_path=self._db_path)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError("Database not initialized")
        return self._db

    # ── Transactions ─────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a group of statements as one atomic unit.

        Commits on normal exit. On any exception rolls back and re-raises;
        aiosqlite errors other than IntegrityError are wrapped in
        PersistenceError. IntegrityError propagates unchanged so callers can
        report a unique-key violation as a conflict.
        """
        async with self._lock:
            conn = self._conn()
            try:
                yield conn
                await conn.commit()
            except BaseException as exc:
                await conn.rollback()
                if isinstance(exc, aiosqlite.IntegrityError):
                    raise
                if isinstance(exc, aiosqlite.Error):
                    logger.error(
                        "database_transaction_failed",
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    raise PersistenceError("Storage operation failed") from exc
                raise

    # ── Single-statement helpers ─────────────────────────────────────────────

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute one write statement atomically. Returns the affected row count."""
        async with self.transaction() as conn:
            cursor = await conn.execute(sql, tuple(params))
            return cursor.rowcount

    async def fetchone(self, sql: str, params: Iterable[Any] = ()) -> Optional[aiosqlite.Row]:
        """Run a read query and return the first row (or None)."""
        async with self.transaction() as conn:
            cursor = await conn.execute(sql, tuple(params))
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        """Run a read query and return all rows."""
        async with self.transaction() as conn:
            cursor = await conn.execute(sql, tuple(params))
            return list(await cursor.fetchall())

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            await self.fetchone("SELECT 1")
            return True
        except Exception:
            return False
