"""End-to-end flow over the full app: login → CRUD → logout.

Runs against create_app() with real stores on a tmp_path SQLite file. The
steps mirror how a client actually uses the service:

  1. login with configured credentials → bearer token
  2. create "k"="v" with the token (201)
  3. same request without credentials (401)
  4. logout, then the old token is rejected (401)
  5. the entry written in step 2 is untouched
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import FastAPI
from httpx import AsyncClient

from homectrl.keyvalue.models import EntryStatus


class TestLoginCrudLogout:
    async def test_full_flow(self, client: AsyncClient, app: FastAPI) -> None:
        login = await client.post(
            "/api/v1/auth/login", json={"username": "admin", "password": "secret"}
        )
        assert login.status_code == 200
        token = login.json()["token"]
        auth = {"Authorization": f"Bearer {token}"}

        created = await client.post(
            "/api/v1/keyvalue", json={"key": "k", "value": "v"}, headers=auth
        )
        assert created.status_code == 201

        anonymous = await client.post("/api/v1/keyvalue", json={"key": "k2", "value": "v"})
        assert anonymous.status_code == 401

        logout = await client.post("/api/v1/auth/logout", headers=auth)
        assert logout.status_code == 200

        stale = await client.get("/api/v1/keyvalue/k", headers=auth)
        assert stale.status_code == 401

        entry = await app.state.kv_store.get("k")
        assert entry is not None
        assert (entry.key, entry.value, entry.status, entry.is_hidden) == (
            "k",
            "v",
            EntryStatus.UNREAD,
            False,
        )
        assert await app.state.kv_store.check_exists("k2") is False


class TestEntryLifecycle:
    async def test_status_visibility_and_cleanup(
        self, client: AsyncClient, app: FastAPI, api_key: str, clock
    ) -> None:
        headers = {"X-API-Key": api_key}
        for key in ("A", "B"):
            response = await client.post(
                "/api/v1/keyvalue", json={"key": key, "value": key}, headers=headers
            )
            assert response.status_code == 201

        await client.patch("/api/v1/keyvalue/A/status", json={"status": "read"}, headers=headers)
        await client.patch(
            "/api/v1/keyvalue/A/status", json={"status": "archived"}, headers=headers
        )
        await client.patch("/api/v1/keyvalue/A/hidden", json={"hidden": True}, headers=headers)

        visible = await client.get("/api/v1/keyvalue", headers=headers)
        assert [e["key"] for e in visible.json()] == ["B"]

        clock.advance(hours=2)
        assert await app.state.kv_store.cleanup(timedelta(hours=1)) == 1

        everything = await client.get(
            "/api/v1/keyvalue", params={"include_hidden": "true"}, headers=headers
        )
        assert [e["key"] for e in everything.json()] == ["B"]


class TestSessionExpiry:
    async def test_token_expires_and_sweep_reclaims(
        self, client: AsyncClient, app: FastAPI, clock
    ) -> None:
        login = await client.post(
            "/api/v1/auth/login", json={"username": "admin", "password": "secret"}
        )
        auth = {"Authorization": f"Bearer {login.json()['token']}"}
        assert (await client.get("/api/v1/me", headers=auth)).status_code == 200

        clock.advance(hours=24)
        assert (await client.get("/api/v1/me", headers=auth)).status_code == 401
        assert await app.state.sessions.sweep_expired() == 1
        assert (await client.get("/api/v1/me", headers=auth)).status_code == 401


class TestApiKeyManagementFlow:
    async def test_issue_use_revoke(self, client: AsyncClient, session_token: str) -> None:
        admin = {"Authorization": f"Bearer {session_token}"}
        created = await client.post("/api/v1/auth/keys", json={"name": "hub"}, headers=admin)
        new_key = created.json()["key"]

        as_key = {"X-API-Key": new_key}
        assert (await client.get("/api/v1/keyvalue", headers=as_key)).status_code == 200

        revoked = await client.delete(f"/api/v1/auth/keys/{new_key}", headers=admin)
        assert revoked.status_code == 200
        assert (await client.get("/api/v1/keyvalue", headers=as_key)).status_code == 401
