"""
Configuration management via environment variables.

This module loads configuration from a .env file using python-dotenv.
Environment-level defaults are exposed through the Settings class; each
ContentDB instance still receives its own explicit StoreConfig, so several
stores with different settings can live in one process.

Why environment variables:
1. Flexibility - Different content roots and backends per environment
2. Easy CI/CD override - No code changes needed per environment
3. The same collection definitions work against the file or SQL backend
"""
import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from contentdb.core.exceptions import ConfigurationError


# Load .env file from the working directory
# This must happen before accessing os.environ
env_path = Path.cwd() / ".env"
load_dotenv(env_path)


class BackendKind(str, Enum):
    """Storage backend selector."""
    FILE = "file"
    SQL = "sql"


class RebuildPolicy(str, Enum):
    """What a store does with persisted generations when it is constructed."""
    REBUILD = "rebuild"
    REUSE = "reuse"
    AUTO_IF_STALE = "auto-if-stale"


@dataclass(frozen=True)
class Settings:
    """
    Environment-derived settings.

    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.

    Attributes:
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        content_root: Directory holding the markup source tree
        backend: Storage backend, "file" or "sql"
        location: Snapshot directory (file) or SQLAlchemy URL (sql)
        rebuild_policy: Construction-time rebuild policy
        max_workers: Thread pool size for per-file parsing
        schema_dir: Optional folder scanned for schema definition files
    """
    app_env: str
    log_level: str

    content_root: str
    backend: BackendKind
    location: str
    rebuild_policy: RebuildPolicy
    max_workers: int
    schema_dir: Optional[str]


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Raises:
        ConfigurationError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ConfigurationError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _parse_enum(enum_cls, key: str, default: str):
    raw = _get_env(key, default).strip().lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"{key}={raw!r} is not one of: {allowed}")


def _parse_int(key: str, default: str, minimum: int = 1) -> int:
    raw = _get_env(key, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key}={raw!r} is not an integer")
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once; call get_settings.cache_clear() after changing
    the environment (tests do this through monkeypatch).

    Returns:
        Settings instance with all configuration values

    Raises:
        ConfigurationError: If a variable holds an invalid value
    """
    backend = _parse_enum(BackendKind, "CONTENTDB_BACKEND", "file")

    default_location = ".contentdb" if backend is BackendKind.FILE else "sqlite:///.contentdb.sqlite3"
    location = _get_env("CONTENTDB_LOCATION", default_location)

    # Accept bare postgres:// URLs the way hosted providers hand them out
    if location.startswith("postgres://"):
        location = location.replace("postgres://", "postgresql://", 1)

    schema_dir = os.environ.get("CONTENTDB_SCHEMA_DIR") or None

    return Settings(
        app_env=_get_env("APP_ENV", "development"),
        log_level=_get_env("LOG_LEVEL", "INFO"),

        content_root=_get_env("CONTENTDB_CONTENT_ROOT", "."),
        backend=backend,
        location=location,
        rebuild_policy=_parse_enum(RebuildPolicy, "CONTENTDB_REBUILD_POLICY", "auto-if-stale"),
        max_workers=_parse_int("CONTENTDB_MAX_WORKERS", "4"),
        schema_dir=schema_dir,
    )
