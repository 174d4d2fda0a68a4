"""Entry dataclass and status enum for the key-value store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import aiosqlite

from homectrl.utils.clock import from_db


class EntryStatus(str, Enum):
    """Caller-driven read status. Any value may follow any other."""

    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


@dataclass
class Entry:
    """A key-value record with independent status and visibility attributes.

    Invariant: updated_at >= created_at. Every mutation refreshes updated_at.
    """

    id: int
    key: str
    value: str
    status: EntryStatus
    is_hidden: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "Entry":
        return cls(
            id=row["id"],
            key=row["key"],
            value=row["value"],
            status=EntryStatus(row["status"]),
            is_hidden=bool(row["is_hidden"]),
            created_at=from_db(row["created_at"]),  # type: ignore[arg-type]
            updated_at=from_db(row["updated_at"]),  # type: ignore[arg-type]
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation returned by the HTTP layer."""
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "status": self.status.value,
            "is_hidden": self.is_hidden,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
