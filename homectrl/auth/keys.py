"""home-ctrl API key operations.

Implements:
  - ApiKeyStore.issue()                 — generate a random key and persist it
  - ApiKeyStore.validate()              — lookup + expiry check, pure read
  - ApiKeyStore.revoke()                — delete by value, idempotent
  - ApiKeyStore.list()                  — every key, newest first
  - ApiKeyStore.ensure_bootstrap_key()  — provision one key on an empty store

Key format: 64 lowercase hex chars (32 bytes from `secrets`).

An expired key is inert (validate() returns False) but is not deleted; only
revoke() removes rows.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from homectrl.constants import BOOTSTRAP_API_KEY_NAME, TOKEN_BYTES
from homectrl.errors import PersistenceError, ValidationError
from homectrl.storage.database import Database
from homectrl.utils.clock import Clock, from_db, to_db, utc_now
from homectrl.utils.logger import get_logger, mask_secret

logger = get_logger(__name__)


def generate_token() -> str:
    """Return a fresh unguessable token (hex, TOKEN_BYTES of entropy)."""
    return secrets.token_hex(TOKEN_BYTES)


@dataclass
class ApiKey:
    """A long-lived, optionally expiring credential with no session semantics."""

    id: int
    key: str
    name: str
    created_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "ApiKey":
        return cls(
            id=row["id"],
            key=row["key"],
            name=row["name"],
            created_at=from_db(row["created_at"]),  # type: ignore[arg-type]
            expires_at=from_db(row["expires_at"]),
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    @property
    def masked_key(self) -> str:
        """'abcd...wxyz' — safe to show in listings."""
        return f"{self.key[:4]}...{self.key[-4:]}"

    def to_dict(self, reveal: bool = False) -> dict[str, Any]:
        """JSON-ready form. The full key is only included when ``reveal`` is set."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "masked_key": self.masked_key,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
        if reveal:
            data["key"] = self.key
        return data


class ApiKeyStore:
    """Persisted API keys (api_keys table)."""

    def __init__(self, db: Database, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    @property
    def clock(self) -> Clock:
        return self._clock

    async def issue(self, name: str, expires_at: Optional[datetime] = None) -> ApiKey:
        """Generate, persist and return a new API key.

        Raises:
            ValidationError: If ``name`` is empty.
            PersistenceError: On storage failure, including the (negligible)
                              chance of a unique-key collision. Not retried.
        """
        if not name:
            raise ValidationError("API key name must not be empty")

        key = generate_token()
        now = self._clock()
        try:
            async with self._db.transaction() as conn:
                cursor = await conn.execute(
                    "INSERT INTO api_keys (key, name, created_at, expires_at) VALUES (?, ?, ?, ?)",
                    (key, name, to_db(now), to_db(expires_at) if expires_at else None),
                )
                row_id = cursor.lastrowid
        except aiosqlite.IntegrityError as exc:
            logger.error("API key collision on insert", name=name)
            raise PersistenceError("Failed to create API key") from exc

        api_key = ApiKey(id=row_id or 0, key=key, name=name, created_at=now, expires_at=expires_at)
        logger.info("API key issued", key_id=api_key.id, name=name, masked_key=api_key.masked_key)
        return api_key

    async def get(self, key: str) -> Optional[ApiKey]:
        row = await self._db.fetchone(
            "SELECT id, key, name, created_at, expires_at FROM api_keys WHERE key = ?",
            (key,),
        )
        return ApiKey.from_row(row) if row is not None else None

    async def validate(self, key: str) -> bool:
        """True iff ``key`` exists and has not expired. Never mutates."""
        if not key:
            return False
        api_key = await self.get(key)
        if api_key is None:
            return False
        return not api_key.is_expired(self._clock())

    async def revoke(self, key: str) -> bool:
        """Delete ``key``. Returns whether a row was removed; absence is not an error."""
        deleted = await self._db.execute("DELETE FROM api_keys WHERE key = ?", (key,))
        if deleted:
            logger.info("API key revoked", masked_key=mask_secret(key))
        return deleted > 0

    async def list(self) -> list[ApiKey]:
        rows = await self._db.fetchall(
            "SELECT id, key, name, created_at, expires_at FROM api_keys "
            "ORDER BY created_at DESC, id DESC"
        )
        return [ApiKey.from_row(row) for row in rows]

    async def count(self) -> int:
        row = await self._db.fetchone("SELECT COUNT(*) FROM api_keys")
        return row[0] if row is not None else 0

    async def ensure_bootstrap_key(self) -> Optional[ApiKey]:
        """Issue a default key when the store is empty. Returns it, or None if keys exist.

        The plaintext is logged exactly once so the operator can pick it up.
        """
        if await self.count() > 0:
            return None
        api_key = await self.issue(BOOTSTRAP_API_KEY_NAME)
        logger.warning(
            "Bootstrap API key created — store it now, it is not logged again",
            key_id=api_key.id,
            api_key=api_key.key,
        )
        return api_key
