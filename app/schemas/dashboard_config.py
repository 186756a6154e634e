"""
app/schemas/dashboard_config.py

Explicit dashboard configuration passed into the aggregator.

The settings screen (or a JSON file, see :mod:`app.config_loader`) owns this
object; the engine never reads sources or score overrides from ambient
storage.  Validation happens once, at construction.
"""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.domain.kpi import KPI_FIELDS, ScoreBand
from app.domain.rows import (
    LINE_ITEM_LAYOUT,
    SERVICE_CALL_LAYOUT,
    TIME_SERIES_LAYOUT,
    TIME_SERIES_TABLE_LAYOUT,
    RowLayout,
)
from app.errors import ScoreRangeConfigError
from kpi.base import (
    DEFAULT_DEPARTMENT,
    DEFAULT_DIAGNOSTIC_FEE_MAX,
    DEFAULT_INSTALL_REVENUE_MIN,
    DEFAULT_JOB_EFFICIENCY,
    DepartmentScope,
)
from kpi.rules import ClassificationRules
from kpi.scoring import validate_score_bands

SourceKind = Literal["spreadsheet", "table"]
SourceRole = Literal["kpi", "timeseries", "raw"]

_UNBOUNDED_MARKERS = frozenset({"inf", "+inf", "infinity", "+infinity", "∞"})


class ScoreRangeModel(BaseModel):
    """One ``[min, max) -> score`` band; ``max`` omitted or "infinity" means unbounded."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min: float
    max: float = math.inf
    score: int

    @field_validator("max", mode="before")
    @classmethod
    def parse_unbounded(cls, value: Any) -> Any:
        if value is None:
            return math.inf
        if isinstance(value, str) and value.strip().lower() in _UNBOUNDED_MARKERS:
            return math.inf
        return value

    def to_band(self) -> ScoreBand:
        return ScoreBand(min=self.min, max=self.max, score=self.score)


class SourceConfig(BaseModel):
    """
    Descriptor for one data source.

    ``layout`` overrides individual column roles of the default layout for
    the source kind, by positional index or header name.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    id: str = Field(min_length=1)
    name: str = ""
    kind: SourceKind = "spreadsheet"
    role: SourceRole = "kpi"
    active: bool = True
    credential: str | None = None
    address: str = "A:Z"
    table_name: str | None = None
    date_column: str | None = None
    database_url: str | None = None
    high_detail: bool | None = None
    layout: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_layout(self) -> SourceConfig:
        # Unknown roles raise ValueError here rather than at fetch time.
        self.row_layout()
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def is_high_detail(self) -> bool:
        """Line-item sources get the per-job formulas; KPI tables default to it."""
        if self.high_detail is not None:
            return self.high_detail
        return self.kind == "table" and self.role == "kpi"

    def row_layout(self) -> RowLayout:
        # Trend rows keep their date | value | metric shape whatever the store.
        if self.role == "timeseries":
            base = TIME_SERIES_TABLE_LAYOUT if self.kind == "table" else TIME_SERIES_LAYOUT
        elif self.kind == "table":
            base = LINE_ITEM_LAYOUT
        else:
            base = SERVICE_CALL_LAYOUT
        layout = base.with_overrides(self.layout)
        if self.date_column:
            layout = layout.with_overrides({"date": self.date_column})
        return layout

    @property
    def effective_date_column(self) -> str | None:
        """Date column name used for store-side filtering of table sources."""
        date_ref = self.row_layout().date
        return date_ref if isinstance(date_ref, str) else None


class MetricThresholds(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    install_revenue_min: float = Field(DEFAULT_INSTALL_REVENUE_MIN, ge=0)
    diagnostic_fee_max: float = Field(DEFAULT_DIAGNOSTIC_FEE_MAX, gt=0)
    job_efficiency_default: float = Field(DEFAULT_JOB_EFFICIENCY, ge=0)
    department_filter: str | None = DEFAULT_DEPARTMENT
    department_scope: DepartmentScope = "entity_metrics"


class KeywordRules(BaseModel):
    """Keyword lists behind the default classification rules."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    jetting: tuple[str, ...] = ("jet",)
    descaling: tuple[str, ...] = ("desc",)
    membership: tuple[str, ...] = ("member", "membership", "plan")
    callback: tuple[str, ...] = ("callback", "return", "yes")
    complaint: tuple[str, ...] = ("complaint", "issue", "yes")

    def to_rules(self) -> ClassificationRules:
        return ClassificationRules.from_keywords(
            jetting=self.jetting,
            descaling=self.descaling,
            membership=self.membership,
            callback=self.callback,
            complaint=self.complaint,
        )


class DashboardConfig(BaseModel):
    """
    Complete engine configuration.

    ``scoring_ranges`` maps a KPI field name to its override bands, which
    must cover ``[<=0, infinity)`` contiguously.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    sources: tuple[SourceConfig, ...] = ()
    global_api_key: str | None = None
    scoring_ranges: dict[str, tuple[ScoreRangeModel, ...]] = Field(default_factory=dict)
    thresholds: MetricThresholds = Field(default_factory=MetricThresholds)
    keywords: KeywordRules = Field(default_factory=KeywordRules)
    week_mode: Literal["to_date", "complete"] = "to_date"
    require_date_filter: bool = False

    @field_validator("scoring_ranges")
    @classmethod
    def validate_scoring_ranges(
        cls, value: dict[str, tuple[ScoreRangeModel, ...]]
    ) -> dict[str, tuple[ScoreRangeModel, ...]]:
        problems: list[str] = []
        for metric_id, ranges in value.items():
            if metric_id not in KPI_FIELDS:
                problems.append(f"{metric_id}: unknown metric id")
                continue
            try:
                validate_score_bands(metric_id, [item.to_band() for item in ranges])
            except ScoreRangeConfigError as exc:
                problems.extend(f"{metric_id}: {problem}" for problem in exc.problems)
        if problems:
            raise ValueError("; ".join(problems))
        return {
            metric_id: tuple(sorted(ranges, key=lambda item: item.min))
            for metric_id, ranges in value.items()
        }

    @field_validator("sources")
    @classmethod
    def unique_source_ids(cls, value: tuple[SourceConfig, ...]) -> tuple[SourceConfig, ...]:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for source in value:
            if source.id in seen:
                duplicates.add(source.id)
            seen.add(source.id)
        if duplicates:
            raise ValueError(f"duplicate source ids: {', '.join(sorted(duplicates))}")
        return value

    def active_sources(self, role: SourceRole | None = None) -> list[SourceConfig]:
        return [
            source
            for source in self.sources
            if source.active and (role is None or source.role == role)
        ]

    def credential_for(self, source: SourceConfig) -> str | None:
        """Source credential, falling back to the global key for spreadsheets."""
        if source.credential:
            return source.credential
        if source.kind == "spreadsheet":
            return self.global_api_key
        return None

    def score_overrides(self) -> dict[str, tuple[ScoreBand, ...]]:
        return {
            metric_id: tuple(item.to_band() for item in ranges)
            for metric_id, ranges in self.scoring_ranges.items()
        }

    def classification_rules(self) -> ClassificationRules:
        return self.keywords.to_rules()
