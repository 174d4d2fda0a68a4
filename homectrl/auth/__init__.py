"""Authentication: credentials, API keys, sessions and the request gate."""

from homectrl.auth.credentials import CredentialStore
from homectrl.auth.gate import (
    ApiKeyAuthenticator,
    AuthGate,
    Principal,
    SessionAuthenticator,
    authenticate_request,
)
from homectrl.auth.keys import ApiKey, ApiKeyStore
from homectrl.auth.sessions import Session, SessionManager, run_session_sweeper

__all__ = [
    "ApiKey",
    "ApiKeyAuthenticator",
    "ApiKeyStore",
    "AuthGate",
    "CredentialStore",
    "Principal",
    "Session",
    "SessionAuthenticator",
    "SessionManager",
    "authenticate_request",
    "run_session_sweeper",
]
