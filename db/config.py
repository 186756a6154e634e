"""
Shared environment-driven database configuration helpers.
"""

from __future__ import annotations

import os
from pathlib import Path

from app.errors import ConfigurationError


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


def normalize_postgres_url(url: str) -> str:
    """
    Normalize postgres URLs to SQLAlchemy's recommended psycopg driver form.
    """

    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def resolve_database_url(explicit_url: str | None = None) -> str:
    """
    Resolve the table-store database URL.

    Priority:
    1) the URL configured on the source itself
    2) TABLE_STORE_DATABASE_URL
    3) DATABASE_URL
    """

    if explicit_url and explicit_url.strip():
        return normalize_postgres_url(explicit_url.strip())

    load_env_files()

    for name in ("TABLE_STORE_DATABASE_URL", "DATABASE_URL"):
        value = os.getenv(name)
        if value and value.strip():
            return normalize_postgres_url(value.strip())

    raise ConfigurationError(
        "No table-store database URL configured. Set database_url on the source, "
        "or TABLE_STORE_DATABASE_URL / DATABASE_URL."
    )
