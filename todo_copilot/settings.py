from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

BACKENDS = {"memory", "localstorage", "sqlite", "api"}


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default), 'localstorage', 'sqlite' or 'api'
    - TODO_STORAGE_PATH: JSON file backing the local-storage backend. Default './data/todos.json'
    - STORAGE_QUOTA_BYTES: optional size limit for the local-storage backend
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todos.db'
    - REMOTE_API_URL: base URL of the remote todo API for the 'api' backend
    - REMOTE_API_TIMEOUT: request timeout in seconds (default 5)
    - REMOTE_API_RETRIES: attempts on transport failures (default 3)
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - LOG_LEVEL: DEBUG, INFO (default), WARNING, ERROR
    """

    persistence_backend: str
    storage_path: str
    storage_quota_bytes: Optional[int]
    sqlite_db_path: str
    remote_api_url: str
    remote_api_timeout: float
    remote_api_retries: int
    cors_allow_origins: List[str]
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in BACKENDS:
        # Fallback to memory if unsupported
        backend = "memory"

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        log_level = "INFO"

    return Settings(
        persistence_backend=backend,
        storage_path=_get_env("TODO_STORAGE_PATH", "./data/todos.json").strip(),
        storage_quota_bytes=_parse_int(os.getenv("STORAGE_QUOTA_BYTES"), None),
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todos.db").strip(),
        remote_api_url=_get_env("REMOTE_API_URL", "http://localhost:3000/api/v1").strip(),
        remote_api_timeout=_parse_float(_get_env("REMOTE_API_TIMEOUT", "5"), 5.0),
        remote_api_retries=_parse_int(_get_env("REMOTE_API_RETRIES", "3"), 3) or 3,
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        log_level=log_level,
    )
