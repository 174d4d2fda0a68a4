"""home-ctrl FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - exception handlers mapping HomeCtrlError subclasses to JSON error bodies
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()              → app.state.config
  2. Database.initialize()      → app.state.db
  3. CredentialStore + users    → app.state.credentials
  4. ApiKeyStore (+ bootstrap)  → app.state.api_keys
  5. SessionManager             → app.state.sessions
  6. KeyValueStore              → app.state.kv_store
  7. AuthGate                   → app.state.auth_gate
  8. Background tasks           → session sweeper, archive cleaner, config watcher
  9. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → cancel background tasks → close database
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from homectrl import __version__
from homectrl.auth.credentials import CredentialStore
from homectrl.auth.gate import AuthGate
from homectrl.auth.keys import ApiKeyStore
from homectrl.auth.limiter import limiter
from homectrl.auth.reloader import watch_config
from homectrl.auth.router import router as auth_router
from homectrl.auth.sessions import SessionManager, run_session_sweeper
from homectrl.config import Config, load_config
from homectrl.errors import HomeCtrlError
from homectrl.health import api_router as health_api_router
from homectrl.health import router as health_router
from homectrl.keyvalue.router import router as keyvalue_router
from homectrl.keyvalue.store import KeyValueStore, run_archive_cleaner
from homectrl.middleware import RequestIDMiddleware
from homectrl.storage.database import Database
from homectrl.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)

API_PREFIX = "/api/v1"


async def _cancel(task: Optional[asyncio.Task[None]]) -> None:
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    load_config() raises SystemExit on an invalid config file, and
    Database.initialize() raises on an unusable database, so the process
    exits before ready=True is ever set.
    """
    logger.info("home-ctrl starting up...", version=__version__)

    # ── Step 1: Load configuration ────────────────────────────────────────────
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Open database ─────────────────────────────────────────────────
    db = Database(config.storage.db_path)
    await db.initialize()
    app.state.db = db

    try:
        # ── Step 3: Credentials (bcrypt hashing off the event loop) ──────────
        credentials = CredentialStore()
        await run_in_threadpool(credentials.replace_users, config.auth.users)
        app.state.credentials = credentials

        # ── Step 4: API keys (+ bootstrap) ────────────────────────────────────
        api_keys = ApiKeyStore(db)
        if config.auth.bootstrap_api_key:
            await api_keys.ensure_bootstrap_key()
    except Exception as exc:
        logger.error(
            "Startup failed, closing database",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await db.close()
        raise

    # ── Step 5-7: Stores and gate ─────────────────────────────────────────────
    sessions = SessionManager(db)
    kv_store = KeyValueStore(db)

    app.state.api_keys = api_keys
    app.state.sessions = sessions
    app.state.kv_store = kv_store
    app.state.auth_gate = AuthGate.default(api_keys, sessions)

    # ── Step 8: Background tasks (interval 0 disables) ───────────────────────
    maintenance = config.maintenance
    sweeper_task: Optional[asyncio.Task[None]] = None
    if maintenance.session_sweep_interval_seconds > 0:
        sweeper_task = asyncio.create_task(
            run_session_sweeper(sessions, maintenance.session_sweep_interval_seconds)
        )
    else:
        logger.info("Session sweeper disabled")

    cleaner_task: Optional[asyncio.Task[None]] = None
    if maintenance.archive_cleanup_interval_seconds > 0:
        cleaner_task = asyncio.create_task(
            run_archive_cleaner(
                kv_store,
                maintenance.archive_cleanup_interval_seconds,
                maintenance.archive_retention,
            )
        )
    else:
        logger.info("Archive cleaner disabled")

    watcher_task: Optional[asyncio.Task[None]] = None
    if config.path:
        watcher_task = asyncio.create_task(watch_config(credentials, config.path))
    else:
        logger.debug("Config file watcher disabled (no config file loaded)")

    # ── Step 9: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "home-ctrl ready",
        address=config.server.address,
        db_path=db.path,
        users=len(credentials),
    )

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("home-ctrl shutting down...")
    app.state.ready = False

    await _cancel(watcher_task)
    await _cancel(cleaner_task)
    await _cancel(sweeper_task)

    await db.close()
    logger.info("home-ctrl shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the home-ctrl FastAPI application.

    Tests build the app with create_app() and install app.state.* directly
    (httpx ASGITransport does not run the lifespan).
    """
    application = FastAPI(
        title="home-ctrl",
        description="Authenticated key-value service for home automation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # /health returns 503 until lifespan startup completes.
    application.state.ready = False

    # slowapi looks the limiter up on app.state.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # NOTE: the LAST-added middleware is OUTERMOST; request ids wrap everything.
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(RequestIDMiddleware)

    application.include_router(health_router)
    application.include_router(health_api_router, prefix=API_PREFIX)
    application.include_router(auth_router, prefix=API_PREFIX)
    application.include_router(keyvalue_router, prefix=API_PREFIX)

    # ─── Exception handlers ───────────────────────────────────────────────────

    @application.exception_handler(HomeCtrlError)
    async def homectrl_error_handler(request: Request, exc: HomeCtrlError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed",
            error_code=exc.code,
            status_code=exc.status_code,
            message=exc.message,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.title, "message": exc.message},
        )

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        message = f"{location}: {detail}" if location else detail
        logger.warning("Request validation failed", path=str(request.url.path), message=message)
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "message": message},
        )

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": HTTPStatus(exc.status_code).phrase, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "Internal server error"},
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────
#   uvicorn homectrl.main:app --host 127.0.0.1 --port 8080

app = create_app()
