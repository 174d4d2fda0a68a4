"""Shared constants for home-ctrl.

Token sizes, header names and lifecycle defaults used across modules are
defined here. Import from here rather than repeating literals.
"""

# ─── Service identity ────────────────────────────────────────────────────────

SERVICE_NAME: str = "home-ctrl"

# ─── Token entropy ───────────────────────────────────────────────────────────

# Random bytes behind every session token and API key. Hex-encoded, so the
# resulting strings are twice this long (64 chars, 256 bits of entropy).
TOKEN_BYTES: int = 32

# ─── Credentials ─────────────────────────────────────────────────────────────

# bcrypt cost factor for configured user passwords.
BCRYPT_ROUNDS: int = 12

# bcrypt only considers the first 72 bytes of its input; longer passwords are
# rejected instead of being silently truncated.
BCRYPT_MAX_PASSWORD_BYTES: int = 72

# ─── Request headers ─────────────────────────────────────────────────────────

API_KEY_HEADER: str = "X-API-Key"
AUTHORIZATION_HEADER: str = "Authorization"
REQUEST_ID_HEADER: str = "X-Request-ID"

# ─── Lifecycle defaults ──────────────────────────────────────────────────────

DEFAULT_SESSION_TTL_HOURS: int = 24
DEFAULT_SESSION_SWEEP_INTERVAL_S: int = 3600
DEFAULT_ARCHIVE_CLEANUP_INTERVAL_S: int = 3600
DEFAULT_ARCHIVE_RETENTION_HOURS: int = 168  # 7 days

# Upper bounds on configured and requested lifetimes; timestamps must stay
# representable as datetimes.
MAX_SESSION_TTL_HOURS: int = 24 * 365
MAX_ARCHIVE_RETENTION_HOURS: int = 24 * 365 * 10
MAX_API_KEY_LIFETIME_S: int = 60 * 60 * 24 * 365 * 10

# Name given to the API key provisioned on first run.
BOOTSTRAP_API_KEY_NAME: str = "Default API Key"

# ─── Rate limits (slowapi syntax) ────────────────────────────────────────────

LOGIN_RATE_LIMIT: str = "10/minute"
KEY_MANAGEMENT_RATE_LIMIT: str = "20/minute"
