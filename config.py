"""Application-wide configuration helpers and constants."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Final

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")


logger = logging.getLogger(__name__)


def _clean_text(value: str | None) -> str:
    """Return ``value`` stripped of surrounding whitespace."""

    if value is None:
        return ""
    return value.strip()


def _path_from(env_value: str | None, default: str | Path) -> Path:
    """Resolve a filesystem path using an environment override when provided."""

    text = _clean_text(env_value)
    candidate = Path(text) if text else Path(default)
    candidate = candidate.expanduser()
    if candidate.is_absolute():
        try:
            return candidate.resolve()
        except (OSError, RuntimeError):  # pragma: no cover - fallback for exotic paths
            return candidate
    return candidate


def _coerce_positive_float(value: str | None, default: float) -> float:
    """Return ``value`` coerced to a positive float or ``default`` when invalid."""

    text = _clean_text(value)
    if not text:
        return default
    try:
        numeric = float(text)
    except (TypeError, ValueError):
        return default
    return numeric if numeric > 0 else default


def _coerce_positive_int(value: str | None, default: int) -> int:
    """Return ``value`` coerced to a positive integer or ``default`` when invalid."""

    text = _clean_text(value)
    if not text:
        return default
    try:
        numeric = int(float(text))
    except (TypeError, ValueError):
        return default
    return numeric if numeric > 0 else default


def _first_env(*names: str) -> str:
    for name in names:
        text = _clean_text(os.environ.get(name))
        if text:
            return text
    return ""


LOG_DIR_PATH: Final[Path] = _path_from(os.environ.get("LOG_DIR"), BASE_DIR / "logs")
LOG_DIR: Final[str] = os.fspath(LOG_DIR_PATH)
LOG_FILE_PATH: Final[Path] = _path_from(
    os.environ.get("LOG_FILE"), LOG_DIR_PATH / "app.log"
)
LOG_FILE: Final[str] = os.fspath(LOG_FILE_PATH)

DEFAULT_IGDB_BASE_URL: Final[str] = "https://api.igdb.com/v4"
DEFAULT_TWITCH_TOKEN_URL: Final[str] = "https://id.twitch.tv/oauth2/token"
DEFAULT_IGDB_USER_AGENT: Final[str] = "IGDB-Catalog-Engine/1.0 (support@example.com)"

IGDB_BASE_URL: Final[str] = (
    _clean_text(os.environ.get("IGDB_BASE_URL")) or DEFAULT_IGDB_BASE_URL
).rstrip("/")
TWITCH_TOKEN_URL: Final[str] = (
    _clean_text(os.environ.get("TWITCH_TOKEN_URL")) or DEFAULT_TWITCH_TOKEN_URL
)
IGDB_USER_AGENT: Final[str] = (
    _clean_text(os.environ.get("IGDB_USER_AGENT")) or DEFAULT_IGDB_USER_AGENT
)

TWITCH_CLIENT_ID: Final[str] = _first_env("TWITCH_CLIENT_ID", "IGDB_CLIENT_ID")
TWITCH_CLIENT_SECRET: Final[str] = _first_env(
    "TWITCH_CLIENT_SECRET", "IGDB_CLIENT_SECRET"
)
IGDB_ENABLED: bool = True

IGDB_REQUEST_TIMEOUT_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("IGDB_REQUEST_TIMEOUT"), 10.0
)
FACET_STATS_TIMEOUT_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("FACET_STATS_TIMEOUT"), 120.0
)
FACET_STATS_CACHE_TTL_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("FACET_STATS_CACHE_TTL"), 60 * 60.0
)
GAME_CACHE_TTL_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("GAME_CACHE_TTL"), 10 * 60.0
)
GAME_CACHE_MAX_SIZE: Final[int] = _coerce_positive_int(
    os.environ.get("GAME_CACHE_MAX_SIZE"), 1000
)
TOKEN_REFRESH_MARGIN_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("TOKEN_REFRESH_MARGIN"), 60.0
)
FILTER_STATS_MIN_INTERVAL_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("FILTER_STATS_MIN_INTERVAL"), 1.0
)
RETRY_AFTER_MAX_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("RETRY_AFTER_MAX"), 10.0
)


def validate_igdb_credentials() -> bool:
    """Ensure IGDB credentials are configured and update ``IGDB_ENABLED``."""

    global IGDB_ENABLED

    missing = [
        name
        for name, value in (
            ("TWITCH_CLIENT_ID", TWITCH_CLIENT_ID),
            ("TWITCH_CLIENT_SECRET", TWITCH_CLIENT_SECRET),
        )
        if not value
    ]

    IGDB_ENABLED = not missing
    if missing:
        logger.error(
            "Missing required IGDB credentials; set %s.", " and ".join(missing)
        )

    return IGDB_ENABLED


__all__ = [
    "BASE_DIR",
    "DEFAULT_IGDB_BASE_URL",
    "DEFAULT_IGDB_USER_AGENT",
    "DEFAULT_TWITCH_TOKEN_URL",
    "FACET_STATS_CACHE_TTL_SECONDS",
    "FACET_STATS_TIMEOUT_SECONDS",
    "FILTER_STATS_MIN_INTERVAL_SECONDS",
    "GAME_CACHE_MAX_SIZE",
    "GAME_CACHE_TTL_SECONDS",
    "IGDB_BASE_URL",
    "IGDB_ENABLED",
    "IGDB_REQUEST_TIMEOUT_SECONDS",
    "IGDB_USER_AGENT",
    "LOG_DIR",
    "LOG_DIR_PATH",
    "LOG_FILE",
    "LOG_FILE_PATH",
    "RETRY_AFTER_MAX_SECONDS",
    "TOKEN_REFRESH_MARGIN_SECONDS",
    "TWITCH_CLIENT_ID",
    "TWITCH_CLIENT_SECRET",
    "TWITCH_TOKEN_URL",
    "validate_igdb_credentials",
]
