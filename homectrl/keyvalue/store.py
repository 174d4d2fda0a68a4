"""KeyValueStore — CRUD and status/visibility lifecycle over named entries.

Lifecycle axes are orthogonal:
  status    ∈ {unread, read, archived}  caller-driven, any → any
  is_hidden ∈ {True, False}             independent toggle

Every mutation runs inside Database.transaction(), so the read-modify-write in
update/set_status/set_hidden cannot interleave with a concurrent delete of the
same key (no resurrected rows, no lost writes).

Deletion is idempotent. cleanup() only ever removes archived entries; it is
storage reclamation and nothing reads through it.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Optional

import aiosqlite

from homectrl.errors import ConflictError, NotFoundError, ValidationError
from homectrl.keyvalue.models import Entry, EntryStatus
from homectrl.storage.database import Database
from homectrl.utils.clock import Clock, to_db, utc_now
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = "id, key, value, status, is_hidden, created_at, updated_at"


class KeyValueStore:
    """Sole mutator of key_values rows."""

    def __init__(self, db: Database, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    # ── Create / read ────────────────────────────────────────────────────────

    async def create(self, key: str, value: str) -> Entry:
        """Insert a new entry as unread and visible.

        Raises:
            ConflictError: If ``key`` already exists.
        """
        now = self._clock()
        try:
            async with self._db.transaction() as conn:
                cursor = await conn.execute(
                    "INSERT INTO key_values (key, value, status, is_hidden, created_at, updated_at) "
                    "VALUES (?, ?, ?, 0, ?, ?)",
                    (key, value, EntryStatus.UNREAD.value, to_db(now), to_db(now)),
                )
                row_id = cursor.lastrowid
        except aiosqlite.IntegrityError as exc:
            raise ConflictError(f"Key '{key}' already exists") from exc

        logger.info("kv_entry_created", key=key)
        return Entry(
            id=row_id or 0,
            key=key,
            value=value,
            status=EntryStatus.UNREAD,
            is_hidden=False,
            created_at=now,
            updated_at=now,
        )

    async def get(self, key: str) -> Optional[Entry]:
        """Return the entry for ``key``, or None if absent."""
        row = await self._db.fetchone(
            f"SELECT {_COLUMNS} FROM key_values WHERE key = ?", (key,)
        )
        return Entry.from_row(row) if row is not None else None

    async def list(self, include_hidden: bool = False) -> list[Entry]:
        """All entries, newest first. Hidden entries are omitted entirely unless asked for."""
        sql = f"SELECT {_COLUMNS} FROM key_values"
        if not include_hidden:
            sql += " WHERE is_hidden = 0"
        sql += " ORDER BY created_at DESC, id DESC"
        rows = await self._db.fetchall(sql)
        return [Entry.from_row(row) for row in rows]

    async def check_status(self, key: str) -> Optional[EntryStatus]:
        """Existence + status probe. None means the key does not exist."""
        row = await self._db.fetchone(
            "SELECT status FROM key_values WHERE key = ?", (key,)
        )
        return EntryStatus(row["status"]) if row is not None else None

    async def check_exists(self, key: str) -> bool:
        row = await self._db.fetchone(
            "SELECT EXISTS(SELECT 1 FROM key_values WHERE key = ?)", (key,)
        )
        return bool(row[0]) if row is not None else False

    # ── Mutations ────────────────────────────────────────────────────────────

    async def update(self, key: str, value: str) -> Entry:
        """Replace the value. Raises NotFoundError if absent."""
        return await self._mutate(key, "value", value)

    async def set_status(self, key: str, status: EntryStatus) -> Entry:
        """Move to ``status`` (already validated by the caller). Raises NotFoundError if absent."""
        return await self._mutate(key, "status", EntryStatus(status).value)

    async def set_hidden(self, key: str, hidden: bool) -> Entry:
        """Toggle visibility. Raises NotFoundError if absent."""
        return await self._mutate(key, "is_hidden", int(hidden))

    async def _mutate(self, key: str, column: str, value: Any) -> Entry:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM key_values WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Key '{key}' not found")

            entry = Entry.from_row(row)
            # Never let updated_at precede created_at, even with a skewed clock.
            updated_at = max(self._clock(), entry.created_at)
            await conn.execute(
                f"UPDATE key_values SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, to_db(updated_at), entry.id),
            )

        if column == "value":
            entry.value = value
        elif column == "status":
            entry.status = EntryStatus(value)
        else:
            entry.is_hidden = bool(value)
        entry.updated_at = updated_at

        logger.info("kv_entry_updated", key=key, field=column)
        return entry

    async def delete(self, key: str) -> None:
        """Delete ``key``. Absent keys are a no-op."""
        deleted = await self._db.execute("DELETE FROM key_values WHERE key = ?", (key,))
        if deleted:
            logger.info("kv_entry_deleted", key=key)

    # ── Reclamation ──────────────────────────────────────────────────────────

    async def cleanup(self, older_than: timedelta) -> int:
        """Delete archived entries last updated before ``now - older_than``.

        unread and read entries are never touched, whatever their age.
        Returns the number of rows deleted.

        Raises:
            ValidationError: If ``older_than`` is negative.
        """
        if older_than < timedelta(0):
            raise ValidationError("older_than must not be negative")

        cutoff = self._clock() - older_than
        count = await self._db.execute(
            "DELETE FROM key_values WHERE status = ? AND updated_at < ?",
            (EntryStatus.ARCHIVED.value, to_db(cutoff)),
        )
        if count > 0:
            logger.info(
                "kv_archive_cleanup_complete",
                deleted_count=count,
                cutoff=to_db(cutoff),
            )
        return count


# ─── Background cleanup task ─────────────────────────────────────────────────


async def run_archive_cleaner(
    store: KeyValueStore,
    interval_seconds: float,
    older_than: timedelta,
) -> None:
    """Background asyncio task: run cleanup() every ``interval_seconds``.

    Registered with asyncio.create_task() during lifespan startup and
    cancelled on shutdown. Errors are logged and the next tick retries.
    """
    logger.info(
        "archive_cleaner_started",
        interval_seconds=interval_seconds,
        retention_seconds=older_than.total_seconds(),
    )
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await store.cleanup(older_than)
        except asyncio.CancelledError:
            logger.info("archive_cleaner_cancelled")
            raise
        except Exception as exc:
            logger.error(
                "archive_cleanup_error",
                error=str(exc),
                error_type=type(exc).__name__,
            )
