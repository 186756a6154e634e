"""
db/session.py

SQLAlchemy engine factory for table-store sources.

Engines are created lazily and shared per database URL so that repeated
fetches against the same store reuse one connection pool.
"""

from __future__ import annotations

import os
import threading

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from db.config import resolve_database_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("postgresql"):
        return create_engine(
            database_url,
            echo=_get_bool_env("SQL_ECHO", default=False),
            pool_pre_ping=True,
            pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
            pool_size=_get_int_env("DB_POOL_SIZE", 5),
            max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
        )
    return create_engine(database_url, echo=_get_bool_env("SQL_ECHO", default=False))


_engines: dict[str, Engine] = {}
_engines_lock = threading.Lock()


def get_engine(database_url: str | None = None) -> Engine:
    """Return the shared engine for *database_url*, creating it on first call."""
    url = resolve_database_url(database_url)
    with _engines_lock:
        engine = _engines.get(url)
        if engine is None:
            engine = create_db_engine(url)
            _engines[url] = engine
    return engine


def dispose_engines() -> None:
    """Dispose every cached engine (used on shutdown and in tests)."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
