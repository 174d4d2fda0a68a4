"""Unit tests for homectrl/auth/gate.py.

Verifies the gate precedence against a minimal app exposing one protected route:
  - valid X-API-Key → admitted, no identity
  - valid Bearer session → admitted, identity = username
  - invalid API key does not block a valid bearer token
  - missing, malformed, unknown, expired, revoked credentials → 401
  - the gate never creates or extends sessions
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from homectrl.auth.gate import (
    AuthGate,
    Principal,
    _extract_bearer,
    authenticate_request,
)
from homectrl.auth.keys import ApiKeyStore
from homectrl.auth.sessions import SessionManager
from homectrl.errors import AuthError
from homectrl.storage.database import Database


@pytest.fixture
def keys(db: Database, clock) -> ApiKeyStore:
    return ApiKeyStore(db, clock=clock)


@pytest.fixture
def sessions(db: Database, clock) -> SessionManager:
    return SessionManager(db, clock=clock)


@pytest.fixture
async def gate_client(keys: ApiKeyStore, sessions: SessionManager):
    """Minimal app: GET /protected returns the principal; AuthError → 401."""
    from fastapi.responses import JSONResponse

    app = FastAPI()
    app.state.auth_gate = AuthGate.default(keys, sessions)

    @app.exception_handler(AuthError)
    async def _auth_error(request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"message": exc.message})

    @app.get("/protected")
    async def protected(principal: Principal = Depends(authenticate_request)) -> dict:
        return principal.to_dict()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


class TestExtractBearer:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc123", "abc123"),
            ("bearer abc123", "abc123"),
            ("  Bearer   abc123  ", "abc123"),
            ("Basic abc123", None),
            ("Bearer", None),
            ("abc123", None),
            ("", None),
        ],
    )
    def test_extract(self, header: str, expected) -> None:
        assert _extract_bearer(header) == expected


class TestAdmission:
    async def test_valid_api_key(self, gate_client: AsyncClient, keys: ApiKeyStore) -> None:
        api_key = await keys.issue("test")
        response = await gate_client.get("/protected", headers={"X-API-Key": api_key.key})
        assert response.status_code == 200
        assert response.json() == {"auth_method": "api_key", "username": None}

    async def test_valid_session(
        self, gate_client: AsyncClient, sessions: SessionManager
    ) -> None:
        token = await sessions.create("alice", timedelta(hours=1))
        response = await gate_client.get(
            "/protected", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200
        assert response.json() == {"auth_method": "session", "username": "alice"}

    async def test_api_key_takes_precedence(
        self, gate_client: AsyncClient, keys: ApiKeyStore, sessions: SessionManager
    ) -> None:
        api_key = await keys.issue("test")
        token = await sessions.create("alice", timedelta(hours=1))
        response = await gate_client.get(
            "/protected",
            headers={"X-API-Key": api_key.key, "Authorization": f"Bearer {token}"},
        )
        assert response.json()["auth_method"] == "api_key"

    async def test_invalid_api_key_falls_through_to_session(
        self, gate_client: AsyncClient, sessions: SessionManager
    ) -> None:
        token = await sessions.create("alice", timedelta(hours=1))
        response = await gate_client.get(
            "/protected",
            headers={"X-API-Key": "bogus", "Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 200
        assert response.json()["username"] == "alice"


class TestRejection:
    async def test_no_credentials(self, gate_client: AsyncClient) -> None:
        response = await gate_client.get("/protected")
        assert response.status_code == 401
        assert response.json() == {"message": "Authentication required"}

    async def test_both_invalid(self, gate_client: AsyncClient) -> None:
        response = await gate_client.get(
            "/protected", headers={"X-API-Key": "bogus", "Authorization": "Bearer bogus"}
        )
        assert response.status_code == 401

    async def test_malformed_bearer_prefix(
        self, gate_client: AsyncClient, sessions: SessionManager
    ) -> None:
        token = await sessions.create("alice", timedelta(hours=1))
        response = await gate_client.get("/protected", headers={"Authorization": token})
        assert response.status_code == 401

    async def test_expired_session(
        self, gate_client: AsyncClient, sessions: SessionManager, clock
    ) -> None:
        token = await sessions.create("alice", timedelta(hours=1))
        clock.advance(hours=2)
        response = await gate_client.get(
            "/protected", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401

    async def test_revoked_api_key(self, gate_client: AsyncClient, keys: ApiKeyStore) -> None:
        api_key = await keys.issue("test")
        await keys.revoke(api_key.key)
        response = await gate_client.get("/protected", headers={"X-API-Key": api_key.key})
        assert response.status_code == 401

    async def test_expired_api_key(
        self, gate_client: AsyncClient, keys: ApiKeyStore, clock
    ) -> None:
        api_key = await keys.issue("temp", expires_at=clock() + timedelta(seconds=30))
        clock.advance(minutes=1)
        response = await gate_client.get("/protected", headers={"X-API-Key": api_key.key})
        assert response.status_code == 401

    async def test_same_message_for_every_failure(self, gate_client: AsyncClient) -> None:
        bodies = {
            (await gate_client.get("/protected", headers=headers)).text
            for headers in (
                {},
                {"X-API-Key": "bogus"},
                {"Authorization": "Bearer bogus"},
                {"Authorization": "Token x"},
            )
        }
        assert len(bodies) == 1


class TestNoSideEffects:
    async def test_gate_does_not_touch_sessions(
        self, gate_client: AsyncClient, sessions: SessionManager, db: Database
    ) -> None:
        token = await sessions.create("alice", timedelta(hours=1))
        before = await sessions.get(token)

        for _ in range(3):
            await gate_client.get("/protected", headers={"Authorization": f"Bearer {token}"})
        await gate_client.get("/protected", headers={"Authorization": "Bearer unknown"})

        after = await sessions.get(token)
        row = await db.fetchone("SELECT COUNT(*) FROM sessions")
        assert after == before
        assert row[0] == 1
