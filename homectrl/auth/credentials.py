"""CredentialStore — in-memory username → bcrypt hash map.

Usernames and passwords come from config (auth.users) at startup and on every
config reload. Plaintext passwords are hashed on add and never kept.

Non-negotiables:
  - bcrypt salted hashes only; plaintext never stored or logged
  - verify() costs the same for unknown users and wrong passwords (a dummy
    hash is checked when the username is absent)
  - all map access goes through one threading.Lock: verify() runs in the
    Starlette threadpool while reload writes from the event loop
"""

from __future__ import annotations

import threading
from typing import Mapping

import bcrypt

from homectrl.constants import BCRYPT_MAX_PASSWORD_BYTES, BCRYPT_ROUNDS
from homectrl.errors import ValidationError
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)


class CredentialStore:
    """Instance-owned credential map. One per running service."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self._rounds = rounds
        self._lock = threading.Lock()
        self._hashes: dict[str, bytes] = {}
        # Checked against when the username is unknown, to equalise timing.
        self._dummy_hash: bytes = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=rounds))

    def _hash(self, password: str) -> bytes:
        encoded = password.encode()
        if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"
            )
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds))

    def add_user(self, username: str, password: str) -> None:
        """Insert or replace the credential for ``username``. Last write wins.

        Raises:
            ValidationError: If the username is empty or the password exceeds
                             bcrypt's 72-byte input limit.
        """
        if not username:
            raise ValidationError("Username must not be empty")
        hashed = self._hash(password)
        with self._lock:
            self._hashes[username] = hashed
        logger.debug("User credential set", username=username)

    def replace_users(self, users: Mapping[str, str]) -> None:
        """Swap the whole map at once (config reload).

        Hashing happens before the lock is taken, so readers never observe a
        half-built map. Users absent from ``users`` are dropped.
        """
        hashed = {username: self._hash(password) for username, password in users.items()}
        with self._lock:
            self._hashes = hashed
        logger.info("Credentials replaced", users=len(hashed))

    def verify(self, username: str, password: str) -> bool:
        """True iff ``username`` exists and ``password`` matches its hash."""
        with self._lock:
            stored = self._hashes.get(username)
        candidate = password.encode()
        # Older bcrypt releases silently truncate past 72 bytes; no stored
        # password is that long, so an oversized candidate never matches.
        if stored is None or len(candidate) > BCRYPT_MAX_PASSWORD_BYTES:
            bcrypt.checkpw(candidate[:BCRYPT_MAX_PASSWORD_BYTES], self._dummy_hash)
            return False
        return bcrypt.checkpw(candidate, stored)

    def usernames(self) -> list[str]:
        """Snapshot of configured usernames, sorted."""
        with self._lock:
            return sorted(self._hashes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hashes)
