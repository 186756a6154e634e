"""
tests/test_settings.py

Pytest unit tests for environment-driven settings and database URL
resolution.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_aggregation_settings, get_external_http_settings
from app.errors import ConfigurationError
from db.config import normalize_postgres_url, resolve_database_url


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    get_aggregation_settings.cache_clear()
    get_external_http_settings.cache_clear()
    yield
    get_aggregation_settings.cache_clear()
    get_external_http_settings.cache_clear()


class TestAggregationSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "DASHBOARD_SOURCE_TIMEOUT_SECONDS",
            "DASHBOARD_TABLE_FALLBACK_ROW_LIMIT",
            "DASHBOARD_CACHE_ENABLED",
            "DASHBOARD_CONFIG_PATH",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = get_aggregation_settings()
        assert settings.source_timeout_seconds == 15.0
        assert settings.table_fallback_row_limit == 100
        assert settings.cache_enabled is True
        assert settings.config_path is None

    def test_environment_overrides_and_clamping(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DASHBOARD_SOURCE_TIMEOUT_SECONDS", "0.2")
        monkeypatch.setenv("DASHBOARD_TABLE_FALLBACK_ROW_LIMIT", "not-a-number")
        monkeypatch.setenv("DASHBOARD_CACHE_ENABLED", "off")
        monkeypatch.setenv("DASHBOARD_CONFIG_PATH", "  /etc/dashboard.json ")
        settings = get_aggregation_settings()
        assert settings.source_timeout_seconds == 1.0
        assert settings.table_fallback_row_limit == 100
        assert settings.cache_enabled is False
        assert settings.config_path == "/etc/dashboard.json"


class TestHTTPSettings:
    def test_retry_budget_is_capped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DASHBOARD_HTTP_MAX_RETRIES", "9")
        monkeypatch.setenv("DASHBOARD_HTTP_BACKOFF_MULTIPLIER", "0.1")
        settings = get_external_http_settings()
        assert settings.max_retries == 2
        assert settings.backoff_multiplier == 1.0


class TestDatabaseURL:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgres://u@h/db", "postgresql+psycopg://u@h/db"),
            ("postgresql://u@h/db", "postgresql+psycopg://u@h/db"),
            ("sqlite:///store.db", "sqlite:///store.db"),
        ],
    )
    def test_normalize(self, url: str, expected: str) -> None:
        assert normalize_postgres_url(url) == expected

    def test_source_url_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://env/db")
        assert resolve_database_url(" postgres://own/db ") == "postgresql+psycopg://own/db"

    def test_table_store_variable_before_generic(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TABLE_STORE_DATABASE_URL", "sqlite:///tables.db")
        monkeypatch.setenv("DATABASE_URL", "postgresql://env/db")
        assert resolve_database_url() == "sqlite:///tables.db"

    def test_missing_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TABLE_STORE_DATABASE_URL", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ConfigurationError):
            resolve_database_url()
