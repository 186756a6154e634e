"""
app/errors.py

Exception taxonomy for the KPI aggregation engine.

Every failure the engine can observe maps onto one of five kinds:

    configuration_missing – no source configured, no credential, invalid config
    source_unreachable    – network failure or timeout
    source_rejected       – authentication / permission failure
    source_malformed      – unparseable response or empty required field
    no_data_in_range      – well-formed data that is empty after filtering

The first four travel on raised exceptions as ``kind``; source failures are
raised by connectors as :class:`app.connectors.base.ConnectorRequestError`.
``no_data_in_range`` is never raised: it is reported as a source and
aggregation status.
"""

from __future__ import annotations

CONFIGURATION_MISSING = "configuration_missing"
SOURCE_UNREACHABLE = "source_unreachable"
SOURCE_REJECTED = "source_rejected"
SOURCE_MALFORMED = "source_malformed"


class DashboardError(Exception):
    """Base exception for all engine failures."""

    kind: str = SOURCE_MALFORMED


class ConfigurationError(DashboardError, ValueError):
    """Raised when required configuration is absent or invalid."""

    kind = CONFIGURATION_MISSING


class ScoreRangeConfigError(ConfigurationError):
    """
    Raised when a score-range list fails load-time validation.

    ``problems`` lists every issue found, not just the first one.
    """

    def __init__(self, metric_id: str, problems: list[str]) -> None:
        self.metric_id = metric_id
        self.problems = problems
        super().__init__(
            f"Invalid score ranges for {metric_id!r}: " + "; ".join(problems)
        )


class SourceError(DashboardError):
    """Base class for failures attributable to a single data source."""
