"""ULID generation utility for home-ctrl.

Provides `generate_ulid()`, used as the X-Request-ID value attached to every
response and bound into every log line emitted while handling that request.

ULIDs are 26 characters of Crockford Base32, lexicographically sortable by
creation time, so request ids in a log stream sort in arrival order.

Uses the `python-ulid` library. Request ids are correlation handles only;
session tokens and API keys come from `secrets`, never from here.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string (e.g., ``"01HXXXXXXXXXXXXXXXXXXXXXX"``).
    """
    return str(ULID())
