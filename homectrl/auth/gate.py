"""home-ctrl authentication gate.

Provides ``authenticate_request()``: a FastAPI Depends()-compatible async
dependency that admits a request on a valid API key or a valid session token.
Protected handlers depend on it, so a 401 short-circuits before any handler
body runs.

Precedence:
  1. X-API-Key: <key>               valid → admit, no identity attached
  2. Authorization: Bearer <token>  valid → admit, identity = session username
  3. anything else                  → AuthError (401 "Authentication required")

An invalid API key does not block a valid bearer token behind it. A malformed
Authorization header (no "Bearer " prefix) counts as absent. The gate only
reads: it never creates, extends or deletes sessions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from fastapi import Request

from homectrl.auth.keys import ApiKeyStore
from homectrl.auth.sessions import SessionManager
from homectrl.constants import API_KEY_HEADER, AUTHORIZATION_HEADER
from homectrl.errors import AuthError
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)

# "Bearer <token>", case-insensitive scheme.
_BEARER_RE = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)


def _extract_bearer(authorization: str) -> Optional[str]:
    """Return the token from 'Authorization: Bearer <token>', or None."""
    if not authorization:
        return None
    m = _BEARER_RE.match(authorization.strip())
    return m.group(1) if m else None


@dataclass(frozen=True)
class Principal:
    """Who was admitted, and how. ``username`` is None for API-key callers."""

    method: str
    username: Optional[str] = None

    def to_dict(self) -> dict:
        return {"auth_method": self.method, "username": self.username}


class Authenticator(Protocol):
    """One credential strategy. Returns None when it cannot admit the request."""

    async def attempt(self, request: Request) -> Optional[Principal]:
        ...


class ApiKeyAuthenticator:
    method = "api_key"

    def __init__(self, keys: ApiKeyStore) -> None:
        self._keys = keys

    async def attempt(self, request: Request) -> Optional[Principal]:
        key = request.headers.get(API_KEY_HEADER)
        if not key:
            return None
        if await self._keys.validate(key):
            return Principal(method=self.method)
        logger.debug("Rejected API key", path=str(request.url.path))
        return None


class SessionAuthenticator:
    method = "session"

    def __init__(self, sessions: SessionManager) -> None:
        self._sessions = sessions

    async def attempt(self, request: Request) -> Optional[Principal]:
        token = _extract_bearer(request.headers.get(AUTHORIZATION_HEADER, ""))
        if token is None:
            return None
        username = await self._sessions.validate(token)
        if username is None:
            logger.debug("Rejected session token", path=str(request.url.path))
            return None
        return Principal(method=self.method, username=username)


class AuthGate:
    """Ordered list of authenticators. First admission wins."""

    def __init__(self, authenticators: Sequence[Authenticator]) -> None:
        self._authenticators = list(authenticators)

    @classmethod
    def default(cls, keys: ApiKeyStore, sessions: SessionManager) -> "AuthGate":
        return cls([ApiKeyAuthenticator(keys), SessionAuthenticator(sessions)])

    async def evaluate(self, request: Request) -> Principal:
        """Admit or reject ``request``.

        Raises:
            AuthError: No authenticator admitted the request.
        """
        for authenticator in self._authenticators:
            principal = await authenticator.attempt(request)
            if principal is not None:
                return principal

        logger.warning(
            "Authentication failed",
            path=str(request.url.path),
            method=request.method,
        )
        raise AuthError()


async def authenticate_request(request: Request) -> Principal:
    """FastAPI dependency: evaluate the app's AuthGate for this request.

    The admitted Principal is also stored on ``request.state.principal``.
    """
    gate: AuthGate = request.app.state.auth_gate
    principal = await gate.evaluate(request)
    request.state.principal = principal
    return principal
