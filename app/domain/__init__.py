"""
app/domain package marker.
"""

from app.domain.date_range import DateRange
from app.domain.kpi import (
    AggregationOutcome,
    AggregationStatus,
    DashboardSnapshot,
    KPIResult,
    ScoreBand,
    SourceReport,
    SourceStatus,
    TimeSeriesPoint,
)
from app.domain.rows import (
    LINE_ITEM_LAYOUT,
    SERVICE_CALL_LAYOUT,
    TIME_SERIES_LAYOUT,
    TIME_SERIES_TABLE_LAYOUT,
    RowLayout,
)

__all__ = [
    "AggregationOutcome",
    "AggregationStatus",
    "DashboardSnapshot",
    "DateRange",
    "KPIResult",
    "LINE_ITEM_LAYOUT",
    "RowLayout",
    "SERVICE_CALL_LAYOUT",
    "ScoreBand",
    "SourceReport",
    "SourceStatus",
    "TIME_SERIES_LAYOUT",
    "TIME_SERIES_TABLE_LAYOUT",
    "TimeSeriesPoint",
]
