"""Auth API endpoints.

Provides:
  POST   /api/v1/auth/login        — username/password → session token
  POST   /api/v1/auth/logout       — revoke the bearer token, if any (always 200)
  GET    /api/v1/me                — the admitted principal (protected)
  GET    /api/v1/auth/keys         — list API keys, masked (protected)
  POST   /api/v1/auth/keys         — issue an API key, plaintext shown once (protected)
  DELETE /api/v1/auth/keys/{key}   — revoke an API key (protected)

Login and key management are rate limited per remote address (slowapi).
Login failure is one uniform 401 regardless of which check failed.
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from homectrl.auth.credentials import CredentialStore
from homectrl.auth.gate import Principal, _extract_bearer, authenticate_request
from homectrl.auth.keys import ApiKeyStore
from homectrl.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, LOGIN_RATE_LIMIT, limiter
from homectrl.auth.sessions import SessionManager
from homectrl.constants import AUTHORIZATION_HEADER, MAX_API_KEY_LIFETIME_S
from homectrl.errors import AuthError, NotFoundError
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])


# ─── Request Models ───────────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class CreateKeyRequest(BaseModel):
    """Request body for POST /api/v1/auth/keys."""

    name: str = Field(min_length=1, max_length=200)
    expires_in_seconds: Optional[int] = Field(default=None, gt=0, le=MAX_API_KEY_LIFETIME_S)
    """Lifetime from now, at most ten years. Omitted → the key never expires."""


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/auth/login")
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(body: LoginRequest, request: Request) -> dict:
    """Verify credentials and open a session.

    Returns:
        JSON: {token, token_type, expires_in, username, message}

    Raises:
        AuthError (401): Unknown user or wrong password (indistinguishable).
    """
    credentials: CredentialStore = request.app.state.credentials
    sessions: SessionManager = request.app.state.sessions
    ttl: timedelta = request.app.state.config.auth.session_ttl

    # bcrypt is CPU-bound; keep it off the event loop.
    valid = await run_in_threadpool(credentials.verify, body.username, body.password)
    if not valid:
        logger.warning("Login failed", username=body.username)
        raise AuthError("Invalid username or password")

    token = await sessions.create(body.username, ttl)
    logger.info("Login succeeded", username=body.username)
    return {
        "token": token,
        "token_type": "bearer",
        "expires_in": int(ttl.total_seconds()),
        "username": body.username,
        "message": "Login successful",
    }


@router.post("/auth/logout")
async def logout(request: Request) -> dict:
    """Revoke the presented bearer token. Succeeds with or without one."""
    token = _extract_bearer(request.headers.get(AUTHORIZATION_HEADER, ""))
    if token:
        sessions: SessionManager = request.app.state.sessions
        await sessions.revoke(token)
    return {"message": "Logout successful"}


@router.get("/me")
async def me(principal: Principal = Depends(authenticate_request)) -> dict:
    """Who the gate admitted this request as."""
    return principal.to_dict()


@router.get("/auth/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def get_keys(
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> dict:
    """List all API keys (masked representation, newest first)."""
    keys: ApiKeyStore = request.app.state.api_keys
    return {"keys": [api_key.to_dict() for api_key in await keys.list()]}


@router.post("/auth/keys", status_code=201)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def create_key(
    body: CreateKeyRequest,
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> dict:
    """Issue a new API key. The plaintext is returned in this response only."""
    keys: ApiKeyStore = request.app.state.api_keys
    expires_at = None
    if body.expires_in_seconds is not None:
        expires_at = keys.clock() + timedelta(seconds=body.expires_in_seconds)

    api_key = await keys.issue(body.name, expires_at=expires_at)
    logger.info(
        "API key created via API",
        key_id=api_key.id,
        issued_by=principal.username or principal.method,
    )
    return {
        **api_key.to_dict(reveal=True),
        "message": "API key created. Store this key — it will not be shown again.",
    }


@router.delete("/auth/keys/{key}")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def revoke_key(
    key: str,
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> dict:
    """Revoke an API key by its value.

    Raises:
        NotFoundError (404): No such key.
    """
    keys: ApiKeyStore = request.app.state.api_keys
    if not await keys.revoke(key):
        raise NotFoundError("API key not found")
    return {"message": "API key revoked"}
