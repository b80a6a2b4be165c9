from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_URL_ENV = "DATABASE_URL"
_REDIS_URL_ENV = "REDIS_URL"
_WEBHOOK_URL_ENV = "ALERT_WEBHOOK_URL"
_DEDUP_SCOPE_ENV = "ALERT_DEDUP_SCOPE"
_LATEST_TTL_ENV = "LATEST_CACHE_TTL_SECONDS"
_INGEST_TOKEN_ENV = "INGEST_TOKEN"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_MAX_BODY_ENV = "MAX_BODY_BYTES"

DEDUP_SCOPES = ("process", "shared")


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: Optional[str]
    alert_webhook_url: Optional[str]
    alert_dedup_scope: str
    latest_cache_ttl: Optional[int]
    ingest_token: Optional[str]
    log_level: str
    max_body_bytes: int = 1_048_576


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_dedup_scope(default: str) -> str:
    candidate = _read_str_env(_DEDUP_SCOPE_ENV, default).lower()
    return candidate if candidate in DEDUP_SCOPES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "sqlite:///./tmp/telemetry.db"),
        redis_url=_read_optional_env(_REDIS_URL_ENV, None),
        alert_webhook_url=_read_optional_env(_WEBHOOK_URL_ENV, None),
        alert_dedup_scope=_read_dedup_scope("process"),
        latest_cache_ttl=_read_positive_int(_LATEST_TTL_ENV, None),
        ingest_token=_read_optional_env(_INGEST_TOKEN_ENV, None),
        log_level=_read_log_level("INFO"),
        max_body_bytes=_read_positive_int(_MAX_BODY_ENV, 1_048_576),
    )
