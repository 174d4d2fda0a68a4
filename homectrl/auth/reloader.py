"""Config hot-reload for credentials.

Watches the loaded config file with watchfiles and, on every change, re-reads
``auth.users`` and swaps it into the CredentialStore via replace_users().

An unreadable or invalid file is logged and ignored: the prior users stay in
place and the watcher keeps running. Existing sessions are not touched; a user
removed from config keeps any session already issued until it expires or is
revoked.
"""

from __future__ import annotations

import asyncio

import watchfiles
from starlette.concurrency import run_in_threadpool

from homectrl.auth.credentials import CredentialStore
from homectrl.config import parse_users, read_config_file
from homectrl.errors import ValidationError
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)


async def reload_users(credentials: CredentialStore, path: str) -> bool:
    """Re-read ``auth.users`` from ``path`` into ``credentials``.

    Returns True on success, False if the file was rejected (prior users kept).
    """
    try:
        raw = read_config_file(path)
        auth_raw = raw.get("auth") or {}
        if not isinstance(auth_raw, dict):
            raise ValidationError("'auth' must be a mapping")
        users = parse_users(auth_raw.get("users"), path)
        # bcrypt hashing is CPU-bound.
        await run_in_threadpool(credentials.replace_users, users)
    except SystemExit:
        # read_config_file/parse_users report invalid input by exiting; at
        # runtime that only means this reload is skipped.
        logger.error("Config reload rejected, keeping previous users", path=path)
        return False
    except ValidationError as exc:
        logger.error(
            "Config reload rejected, keeping previous users",
            path=path,
            error=exc.message,
        )
        return False

    logger.info("Users reloaded from config", path=path, usernames=credentials.usernames())
    return True


async def watch_config(credentials: CredentialStore, path: str) -> None:
    """Background asyncio task: reload users whenever ``path`` changes.

    Registered with asyncio.create_task() during lifespan startup and
    cancelled on shutdown.
    """
    try:
        logger.info("Config file watcher started", path=path)
        async for _ in watchfiles.awatch(path):
            try:
                await reload_users(credentials, path)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Hot-reload handler error (non-fatal)",
                    error=str(exc),
                    path=path,
                )
    except asyncio.CancelledError:
        logger.debug("Config file watcher cancelled", path=path)
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "Config file watcher error (watcher stopped)",
            error=str(exc),
            path=path,
        )
