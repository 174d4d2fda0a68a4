"""home-ctrl persistence package.

    database.py — Database (aiosqlite, WAL mode, schema version guard,
                  serialised transactions)
"""

from homectrl.storage.database import Database

__all__ = ["Database"]
