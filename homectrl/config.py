"""Config loading for home-ctrl.

Reads `config.yaml` (or `~/.home-ctrl/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. HOMECTRL_CONFIG environment variable (if set)
  3. `config.yaml` (working directory — for development)
  4. `~/.home-ctrl/config.yaml` (home directory — for deployments)

Environment variable overrides:
  HOMECTRL_PORT     — overrides server.port
  HOMECTRL_DATA_DIR — overrides storage.data_dir

Example::

    version: 1
    server:
      host: 127.0.0.1
      port: 8080
    auth:
      session_ttl_hours: 24
      users:
        admin: change-me
    storage:
      data_dir: data
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import NoReturn, Optional

import yaml

from homectrl.constants import (
    DEFAULT_ARCHIVE_CLEANUP_INTERVAL_S,
    DEFAULT_ARCHIVE_RETENTION_HOURS,
    DEFAULT_SESSION_SWEEP_INTERVAL_S,
    DEFAULT_SESSION_TTL_HOURS,
    MAX_ARCHIVE_RETENTION_HOURS,
    MAX_SESSION_TTL_HOURS,
)
from homectrl.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (HOMECTRL_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    "config.yaml",
    os.path.expanduser("~/.home-ctrl/config.yaml"),
]

DATABASE_FILENAME = "home-ctrl.db"


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8080

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class AuthConfig:
    """Credential and session configuration.

    users:             username -> password. Hashed on load; never persisted.
    session_ttl_hours: absolute session lifetime from login.
    bootstrap_api_key: provision one API key on first run when none exist.
    """

    users: dict[str, str] = field(default_factory=dict)
    session_ttl_hours: int = DEFAULT_SESSION_TTL_HOURS
    bootstrap_api_key: bool = True

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)


@dataclass
class StorageConfig:
    """Persistence configuration."""

    data_dir: str = "data"

    @property
    def db_path(self) -> str:
        return os.path.join(os.path.expanduser(self.data_dir), DATABASE_FILENAME)


@dataclass
class MaintenanceConfig:
    """Background reclamation tasks. An interval of 0 disables the task."""

    session_sweep_interval_seconds: int = DEFAULT_SESSION_SWEEP_INTERVAL_S
    archive_cleanup_interval_seconds: int = DEFAULT_ARCHIVE_CLEANUP_INTERVAL_S
    archive_retention_hours: int = DEFAULT_ARCHIVE_RETENTION_HOURS

    @property
    def archive_retention(self) -> timedelta:
        return timedelta(hours=self.archive_retention_hours)


@dataclass
class Config:
    """Root configuration object populated from config.yaml.

    All fields have safe defaults — home-ctrl can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    path: Optional[str] = None  # Path to the loaded config file (watched for reload)

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a malformed section or value.
        """
        server_raw = _section(raw, "server", path)
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=_positive_int(server_raw, "port", 8080, "server.port"),
        )

        auth_raw = _section(raw, "auth", path)
        auth = AuthConfig(
            users=parse_users(auth_raw.get("users"), path),
            session_ttl_hours=_positive_int(
                auth_raw,
                "session_ttl_hours",
                DEFAULT_SESSION_TTL_HOURS,
                "auth.session_ttl_hours",
                maximum=MAX_SESSION_TTL_HOURS,
            ),
            bootstrap_api_key=bool(auth_raw.get("bootstrap_api_key", True)),
        )

        storage_raw = _section(raw, "storage", path)
        storage = StorageConfig(data_dir=str(storage_raw.get("data_dir", "data")))

        maint_raw = _section(raw, "maintenance", path)
        maintenance = MaintenanceConfig(
            session_sweep_interval_seconds=_non_negative_int(
                maint_raw,
                "session_sweep_interval_seconds",
                DEFAULT_SESSION_SWEEP_INTERVAL_S,
                "maintenance.session_sweep_interval_seconds",
            ),
            archive_cleanup_interval_seconds=_non_negative_int(
                maint_raw,
                "archive_cleanup_interval_seconds",
                DEFAULT_ARCHIVE_CLEANUP_INTERVAL_S,
                "maintenance.archive_cleanup_interval_seconds",
            ),
            archive_retention_hours=_non_negative_int(
                maint_raw,
                "archive_retention_hours",
                DEFAULT_ARCHIVE_RETENTION_HOURS,
                "maintenance.archive_retention_hours",
                maximum=MAX_ARCHIVE_RETENTION_HOURS,
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            auth=auth,
            storage=storage,
            maintenance=maintenance,
            path=path,
        )


# ─── Field helpers ────────────────────────────────────────────────────────────


def _fail(msg: str) -> NoReturn:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


def _section(raw: dict, name: str, path: Optional[str]) -> dict:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        _fail(f"'{name}' in {path or 'config'} must be a mapping.")
    return value


def _check_maximum(value: int, maximum: Optional[int], label: str) -> int:
    if maximum is not None and value > maximum:
        _fail(f"{label} must be at most {maximum}, got {value!r}.")
    return value


def _positive_int(
    section: dict, key: str, default: int, label: str, maximum: Optional[int] = None
) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        _fail(f"{label} must be a positive integer, got {value!r}.")
    return _check_maximum(value, maximum, label)


def _non_negative_int(
    section: dict, key: str, default: int, label: str, maximum: Optional[int] = None
) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        _fail(f"{label} must be a non-negative integer, got {value!r}.")
    return _check_maximum(value, maximum, label)


def parse_users(raw: object, path: Optional[str] = None) -> dict[str, str]:
    """Validate the `auth.users` mapping (username -> password).

    Returns an empty dict when the section is absent.

    Raises:
        SystemExit(1): If the section is not a mapping of non-empty strings.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        _fail(f"auth.users in {path or 'config'} must be a mapping of username: password.")
    users: dict[str, str] = {}
    for username, password in raw.items():
        if not isinstance(username, str) or not username:
            _fail(f"auth.users contains an invalid username: {username!r}.")
        if password is None or isinstance(password, (dict, list)):
            _fail(f"auth.users['{username}'] must be a string password.")
        users[username] = str(password)
    return users


# ─── Config loading ───────────────────────────────────────────────────────────


def find_config_path(config_path: Optional[str] = None) -> Optional[str]:
    """Return the first existing config file in search order, or None."""
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("HOMECTRL_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            return expanded
    return None


def read_config_file(found_path: str) -> dict:
    """Read and version-check a config file, returning the raw mapping.

    Raises:
        SystemExit(1): On YAML parse error, unreadable file, non-mapping
                       document, missing or unsupported ``version``.
    """
    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"Failed to parse {found_path}: {exc}\n"
            "home-ctrl refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
    return raw


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate home-ctrl configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On any invalid config file or invalid override value.
    """
    found_path = find_config_path(config_path)

    if found_path is None:
        logger.info("No config file found — using defaults")
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)
    raw = read_config_file(found_path)
    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: home-ctrl is configured to bind on 0.0.0.0 (all interfaces). "
            "Recommended: use server.host: '127.0.0.1' behind a reverse proxy."
        )
    if not config.auth.users:
        logger.warning("No users configured — login is disabled until auth.users is set")

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        users=len(config.auth.users),
        data_dir=config.storage.data_dir,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If HOMECTRL_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("HOMECTRL_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(f"HOMECTRL_PORT environment variable is not a valid integer: '{env_port}'")

    env_data_dir = os.environ.get("HOMECTRL_DATA_DIR")
    if env_data_dir:
        config.storage.data_dir = env_data_dir
