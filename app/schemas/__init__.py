"""
app/schemas package marker.
"""

from app.schemas.dashboard_config import (
    DashboardConfig,
    KeywordRules,
    MetricThresholds,
    ScoreRangeModel,
    SourceConfig,
)

__all__ = [
    "DashboardConfig",
    "KeywordRules",
    "MetricThresholds",
    "ScoreRangeModel",
    "SourceConfig",
]
