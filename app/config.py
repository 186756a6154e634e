"""
app/config.py

Environment-driven runtime settings for the aggregation engine.

The dashboard configuration itself (sources, score ranges, thresholds) is an
explicit object, see :mod:`app.schemas.dashboard_config`.  This module only
covers process-level knobs such as HTTP timeouts and retry budgets.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
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


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for source connectors.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class AggregationSettings:
    """
    Runtime settings for the aggregation orchestrator.
    """

    source_timeout_seconds: float = 15.0
    table_fallback_row_limit: int = 100
    cache_enabled: bool = True
    config_path: str | None = None


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("DASHBOARD_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=min(2, max(0, _get_int_env("DASHBOARD_HTTP_MAX_RETRIES", 2))),
        backoff_initial_seconds=max(0.0, _get_float_env("DASHBOARD_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("DASHBOARD_HTTP_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_aggregation_settings() -> AggregationSettings:
    """
    Return orchestrator settings from environment variables.
    """

    return AggregationSettings(
        source_timeout_seconds=max(1.0, _get_float_env("DASHBOARD_SOURCE_TIMEOUT_SECONDS", 15.0)),
        table_fallback_row_limit=max(1, _get_int_env("DASHBOARD_TABLE_FALLBACK_ROW_LIMIT", 100)),
        cache_enabled=_get_bool_env("DASHBOARD_CACHE_ENABLED", True),
        config_path=_get_optional_str_env("DASHBOARD_CONFIG_PATH"),
    )
