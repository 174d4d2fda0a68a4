"""Key-value entries with status and visibility lifecycle."""

from homectrl.keyvalue.models import Entry, EntryStatus
from homectrl.keyvalue.store import KeyValueStore, run_archive_cleaner

__all__ = ["Entry", "EntryStatus", "KeyValueStore", "run_archive_cleaner"]
