"""
app/domain/kpi.py

Result records produced by the aggregation engine.
"""

from __future__ import annotations

import enum
import math
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any, Mapping

from app.domain.date_range import DateRange


@dataclass(frozen=True)
class KPIResult:
    """
    Fixed-shape record of the sixteen dashboard KPIs.

    Percentages are expressed on a 0-100 scale, currency figures in the
    source's currency, ``total_memberships_renewed`` is a raw count.
    Every field defaults to ``0.0`` so a result is always structurally
    complete.  Instances are never mutated; use :meth:`merged_with` or
    :func:`dataclasses.replace` to derive a new one.
    """

    install_calls_percentage: float = 0.0
    install_revenue_per_call: float = 0.0
    jetting_jobs_percentage: float = 0.0
    jetting_revenue_per_call: float = 0.0
    descaling_jobs_percentage: float = 0.0
    descaling_revenue_per_call: float = 0.0
    membership_conversion_rate: float = 0.0
    total_memberships_renewed: float = 0.0
    tech_pay_percentage: float = 0.0
    labor_revenue_per_hour: float = 0.0
    job_efficiency: float = 0.0
    zero_revenue_call_percentage: float = 0.0
    diagnostic_fee_only_percentage: float = 0.0
    callback_percentage: float = 0.0
    client_complaint_percentage: float = 0.0
    client_review_percentage: float = 0.0

    @classmethod
    def from_partial(cls, values: Mapping[str, float]) -> KPIResult:
        """Build a result from a partial mapping; unknown keys raise."""
        return cls().merged_with(values)

    def merged_with(self, values: Mapping[str, float]) -> KPIResult:
        unknown = set(values) - set(KPI_FIELDS)
        if unknown:
            raise KeyError(f"Unknown KPI fields: {sorted(unknown)}")
        return replace(self, **{name: float(value) for name, value in values.items()})

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


KPI_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(KPIResult))

# Fields that add up across sources rather than averaging.
COUNT_FIELDS: frozenset[str] = frozenset({"total_memberships_renewed"})

# Pairs that a high-detail line-item source recomputes per unique job.
ENTITY_FIELDS: frozenset[str] = frozenset(
    {
        "install_calls_percentage",
        "install_revenue_per_call",
        "jetting_jobs_percentage",
        "jetting_revenue_per_call",
        "descaling_jobs_percentage",
        "descaling_revenue_per_call",
    }
)


@dataclass(frozen=True)
class ScoreBand:
    """``[min, max) -> score``; ``max`` is ``math.inf`` when unbounded."""

    min: float
    max: float
    score: int

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.max)

    def contains(self, value: float) -> bool:
        return value >= self.min and (self.unbounded or value < self.max)


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One trend observation."""

    date: date
    value: float
    metric: str
    is_synthetic: bool = False


class AggregationStatus(str, enum.Enum):
    """Caller-visible outcome of one aggregation pass."""

    SUCCESS = "success"
    PARTIAL = "partial"
    NO_DATA_IN_RANGE = "no_data_in_range"
    SYNTHETIC = "synthetic"
    CONFIGURATION_REQUIRED = "configuration_required"


class SourceStatus(str, enum.Enum):
    OK = "ok"
    NO_DATA = "no_data"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceReport:
    """
    Per-source outcome of one aggregation pass.

    ``error_kind`` is one of the :mod:`app.errors` kind constants when the
    source failed; ``date_filtered`` is ``False`` when no date column could
    be located and the full row set was used.
    """

    source_id: str
    source_name: str
    status: SourceStatus
    row_count: int = 0
    rows_in_range: int = 0
    date_filtered: bool = True
    from_cache: bool = False
    error_kind: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class AggregationOutcome:
    """
    Consolidated KPI result plus the status the UI needs to render it.
    """

    kpis: KPIResult
    status: AggregationStatus
    message: str
    date_range: DateRange
    sources: tuple[SourceReport, ...] = ()
    computed_at: datetime = field(default_factory=datetime.now)

    @property
    def is_synthetic(self) -> bool:
        return self.status in (
            AggregationStatus.SYNTHETIC,
            AggregationStatus.CONFIGURATION_REQUIRED,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kpis": self.kpis.to_dict(),
            "status": self.status.value,
            "is_synthetic": self.is_synthetic,
            "message": self.message,
            "date_range": {
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
            },
            "sources": [
                {**asdict(report), "status": report.status.value} for report in self.sources
            ],
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything one dashboard refresh produces for a time frame."""

    time_frame: str
    date_range: DateRange
    outcome: AggregationOutcome
    trends: tuple[TimeSeriesPoint, ...]
    scores: dict[str, int]
