"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

_CACHE_BACKENDS = {"memory", "database"}

_DEFAULT_NAMESPACE_TTLS: dict[str, float] = {
    "users": 600.0,
    "courses": 600.0,
    "categories": 600.0,
    "companies": 600.0,
    "enrollments": 300.0,
    "completions": 300.0,
    "activity": 180.0,
    "dashboard": 900.0,
}

_MIN_REFRESH_INTERVAL_SECONDS = 30.0
_MAX_REFRESH_INTERVAL_SECONDS = 300.0


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class LMSSettings:
    """
    Remote LMS web-service settings.
    """

    base_url: str = "https://lms.example.org/webservice/rest/server.php"
    token: str = ""
    rest_format: str = "json"
    timeout_seconds: float = 10.0
    max_concurrency: int = 8
    verify_tls: bool = True


@dataclass(frozen=True)
class CacheSettings:
    """
    TTL cache settings. Every namespace carries one fixed TTL.
    """

    backend: str = "memory"
    default_ttl_seconds: float = 600.0
    namespace_ttls: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_NAMESPACE_TTLS))

    def ttl_for(self, namespace: str) -> float:
        return self.namespace_ttls.get(namespace, self.default_ttl_seconds)


@dataclass(frozen=True)
class DashboardSettings:
    """
    Aggregation and refresh settings for role-scoped dashboards.
    """

    activity_window_days: int = 30
    refresh_interval_seconds: float = 60.0
    pass_grade_percent: float = 50.0
    fallback_seed: int = 1234
    trend_weeks: int = 4
    watch_user_ids: tuple[int, ...] = ()


@lru_cache(maxsize=1)
def get_lms_settings() -> LMSSettings:
    """
    Return cached LMS connection settings from environment variables.
    """

    return LMSSettings(
        base_url=_get_str_env("LMS_BASE_URL", LMSSettings.base_url),
        token=_get_str_env("LMS_TOKEN", ""),
        rest_format=_get_str_env("LMS_REST_FORMAT", "json"),
        timeout_seconds=max(1.0, _get_float_env("LMS_TIMEOUT_SECONDS", 10.0)),
        max_concurrency=max(1, _get_int_env("LMS_MAX_CONCURRENCY", 8)),
        verify_tls=_get_bool_env("LMS_VERIFY_TLS", True),
    )


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return cached TTL cache settings.

    Each namespace TTL can be overridden with ``CACHE_TTL_SECONDS_<NAMESPACE>``.
    An unknown ``CACHE_BACKEND`` falls back to the in-memory medium.
    """

    backend = _get_str_env("CACHE_BACKEND", "memory").lower()
    if backend not in _CACHE_BACKENDS:
        backend = "memory"

    namespace_ttls = {
        namespace: max(1.0, _get_float_env(f"CACHE_TTL_SECONDS_{namespace.upper()}", default))
        for namespace, default in _DEFAULT_NAMESPACE_TTLS.items()
    }
    return CacheSettings(
        backend=backend,
        default_ttl_seconds=max(1.0, _get_float_env("CACHE_DEFAULT_TTL_SECONDS", 600.0)),
        namespace_ttls=namespace_ttls,
    )


@lru_cache(maxsize=1)
def get_dashboard_settings() -> DashboardSettings:
    """
    Return cached dashboard aggregation settings.
    """

    refresh_interval = _get_float_env("DASHBOARD_REFRESH_INTERVAL_SECONDS", 60.0)
    refresh_interval = min(
        _MAX_REFRESH_INTERVAL_SECONDS,
        max(_MIN_REFRESH_INTERVAL_SECONDS, refresh_interval),
    )
    return DashboardSettings(
        activity_window_days=max(1, _get_int_env("DASHBOARD_ACTIVITY_WINDOW_DAYS", 30)),
        refresh_interval_seconds=refresh_interval,
        pass_grade_percent=min(100.0, max(0.0, _get_float_env("DASHBOARD_PASS_GRADE_PERCENT", 50.0))),
        fallback_seed=_get_int_env("DASHBOARD_FALLBACK_SEED", 1234),
        trend_weeks=max(1, _get_int_env("DASHBOARD_TREND_WEEKS", 4)),
        watch_user_ids=_parse_user_ids(_get_str_env("DASHBOARD_WATCH_USER_IDS", "")),
    )


def _parse_user_ids(raw_value: str) -> tuple[int, ...]:
    """
    Parse a comma-separated list of user ids, skipping invalid tokens.
    """

    user_ids: list[int] = []
    for token in raw_value.split(","):
        token = token.strip()
        if token.isdigit() and int(token) not in user_ids:
            user_ids.append(int(token))
    return tuple(user_ids)
