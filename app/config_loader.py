"""
app/config_loader.py

Builds :class:`~app.schemas.dashboard_config.DashboardConfig` from a JSON
file or an in-memory mapping, turning validation failures into a single
:class:`~app.errors.ConfigurationError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from app.config import get_aggregation_settings
from app.errors import ConfigurationError
from app.schemas.dashboard_config import DashboardConfig

logger = logging.getLogger(__name__)


def build_dashboard_config(data: Mapping[str, Any]) -> DashboardConfig:
    """
    Validate *data* into a :class:`DashboardConfig`.

    Raises
    ------
    ConfigurationError
        Listing every validation problem found.
    """
    try:
        return DashboardConfig.model_validate(dict(data))
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        ]
        raise ConfigurationError(
            "Invalid dashboard configuration: " + "; ".join(problems)
        ) from exc


def load_dashboard_config(path: str | Path | None = None) -> DashboardConfig:
    """
    Read the dashboard configuration from *path*.

    Without *path* the ``DASHBOARD_CONFIG_PATH`` setting is used; with
    neither, a :class:`ConfigurationError` is raised.
    """
    resolved = path or get_aggregation_settings().config_path
    if not resolved:
        raise ConfigurationError(
            "No dashboard configuration path given and DASHBOARD_CONFIG_PATH is not set."
        )

    config_path = Path(resolved)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read dashboard configuration {config_path}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Dashboard configuration {config_path} is not valid JSON: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Dashboard configuration {config_path} must be a JSON object.")

    config = build_dashboard_config(data)
    logger.info(
        "Loaded dashboard configuration from %s (%d sources, %d score overrides)",
        config_path,
        len(config.sources),
        len(config.scoring_ranges),
    )
    return config
