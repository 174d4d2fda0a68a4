"""Root test configuration for home-ctrl.

Shared fixtures:
  - clock:   a controllable clock injected into every store, so expiry and
             cleanup tests never sleep
  - db:      an initialised Database on a tmp_path SQLite file
  - app:     create_app() with app.state installed directly (httpx ASGITransport
             does not run the lifespan); one user admin/secret
  - client:  httpx.AsyncClient bound to ``app``

bcrypt runs at cost 4 throughout the suite.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from homectrl.auth.credentials import CredentialStore
from homectrl.auth.gate import AuthGate
from homectrl.auth.keys import ApiKeyStore
from homectrl.auth.sessions import SessionManager
from homectrl.config import Config
from homectrl.keyvalue.store import KeyValueStore
from homectrl.storage.database import Database

TEST_BCRYPT_ROUNDS = 4
TEST_USERS = {"admin": "secret"}


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's HOMECTRL_* environment out of the tests."""
    for name in ("HOMECTRL_CONFIG", "HOMECTRL_PORT", "HOMECTRL_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests.

    Prevents test-to-test rate limit bleed where multiple tests hitting the
    same endpoint within the same minute would trigger a 429.
    """
    from homectrl.auth.limiter import limiter

    limiter._storage.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
async def db(tmp_path: Any) -> AsyncIterator[Database]:
    database = Database(str(tmp_path / "home-ctrl.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def credentials() -> CredentialStore:
    store = CredentialStore(rounds=TEST_BCRYPT_ROUNDS)
    store.replace_users(TEST_USERS)
    return store


@pytest.fixture
def app(db: Database, clock: FakeClock, credentials: CredentialStore) -> FastAPI:
    from homectrl.main import create_app

    application = create_app()
    api_keys = ApiKeyStore(db, clock=clock)
    sessions = SessionManager(db, clock=clock)

    application.state.config = Config.defaults()
    application.state.db = db
    application.state.credentials = credentials
    application.state.api_keys = api_keys
    application.state.sessions = sessions
    application.state.kv_store = KeyValueStore(db, clock=clock)
    application.state.auth_gate = AuthGate.default(api_keys, sessions)
    application.state.ready = True
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def api_key(app: FastAPI) -> str:
    """Plaintext of a freshly issued, non-expiring API key."""
    issued = await app.state.api_keys.issue("test key")
    return issued.key


@pytest.fixture
async def session_token(app: FastAPI) -> str:
    return await app.state.sessions.create("admin", timedelta(hours=1))
