"""
Settings from environment variables.

Read once at startup into a plain dict and handed to
ApplicationContainer.config.from_dict(). CLI flags override these values.

Environment Variables:
    SEARCHMATIC_DATABASE_URL: SQLAlchemy URL (default: sqlite:///searchmatic.db)
    NCBI_EMAIL: Contact email sent to NCBI E-utilities
    NCBI_API_KEY: Optional NCBI key (10 req/s instead of 3)
    CROSSREF_EMAIL: Contact email for the CrossRef polite pool
    SEARCHMATIC_HTTP_TIMEOUT: Per-request timeout in seconds (default: 30)
    SEARCHMATIC_CORS_ORIGINS: Comma separated origins (default: *)
    SEARCHMATIC_LOG_LEVEL: Logging level (default: INFO)
    SEARCHMATIC_API_HOST / SEARCHMATIC_API_PORT: Bind address (default: 127.0.0.1:8765)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from searchmatic.infrastructure.persistence.database import DEFAULT_DATABASE_URL
from searchmatic.infrastructure.sources.base_client import DEFAULT_CONTACT_EMAIL
from searchmatic.shared.exceptions import ConfigurationError

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8765
DEFAULT_LOG_LEVEL = "INFO"


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def _parse_float(name: str, value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return parsed


def _parse_port(name: str, value: str | None, default: int) -> int:
    if value is None:
        return default
    if not value.isdigit() or not 0 < int(value) < 65536:
        raise ConfigurationError(f"{name} must be a TCP port, got {value!r}")
    return int(value)


def _parse_origins(value: str | None) -> list[str]:
    if value is None:
        return ["*"]
    origins = [o.strip() for o in value.split(",") if o.strip()]
    return origins or ["*"]


def parse_log_level(value: str | None, source: str = "SEARCHMATIC_LOG_LEVEL") -> str:
    level = (value or DEFAULT_LOG_LEVEL).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"{source} is not a logging level: {value!r}")
    return level


def load_settings(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect settings; raises ConfigurationError on malformed values."""
    environ = os.environ if environ is None else environ

    return {
        "database_url": _env(environ, "SEARCHMATIC_DATABASE_URL") or DEFAULT_DATABASE_URL,
        "ncbi_email": _env(environ, "NCBI_EMAIL") or DEFAULT_CONTACT_EMAIL,
        "ncbi_api_key": _env(environ, "NCBI_API_KEY"),
        "crossref_email": _env(environ, "CROSSREF_EMAIL") or DEFAULT_CONTACT_EMAIL,
        "http_timeout": _parse_float(
            "SEARCHMATIC_HTTP_TIMEOUT",
            _env(environ, "SEARCHMATIC_HTTP_TIMEOUT"),
            DEFAULT_HTTP_TIMEOUT,
        ),
        "cors_origins": _parse_origins(_env(environ, "SEARCHMATIC_CORS_ORIGINS")),
        "log_level": parse_log_level(_env(environ, "SEARCHMATIC_LOG_LEVEL")),
        "api_host": _env(environ, "SEARCHMATIC_API_HOST") or DEFAULT_API_HOST,
        "api_port": _parse_port("SEARCHMATIC_API_PORT", _env(environ, "SEARCHMATIC_API_PORT"), DEFAULT_API_PORT),
    }
