"""
app/services/kpi_orchestrator.py

KPI aggregation orchestrator.

Wires the configured sources → row preparation → KPI formulas → merge into
one consolidated result per request.  No business rule lives here; every
layer keeps its own responsibility:

    Connectors             – fetch raw rows (spreadsheet grid / table records)
    row_inference          – locate and parse the date column
    ServiceCallKPIFormula  – row-level KPIs for every source
    LineItemKPIFormula     – per-job install/jetting/descaling for high-detail sources
    ScoreCard              – 1-10 grading of the consolidated result

Failure contract
----------------
- Each source fetch runs in a worker thread under its own timeout and its
  own failure boundary; a failing source is reported and skipped.
- No active KPI source              → demo data, status ``configuration_required``
- Every source failed               → demo data, status ``synthetic``
- Sources healthy but window empty  → zero result, status ``no_data_in_range``
- Some sources failed               → merged result of the rest, status ``partial``
- :meth:`KPIAggregator.get_kpis`, :meth:`~KPIAggregator.get_time_series` and
  :meth:`~KPIAggregator.load_dashboard` never raise; an unexpected error
  degrades to demo data with status ``synthetic``.

Merging
-------
Rates are averaged across contributing sources weighted by each source's
in-range row count; counts (``total_memberships_renewed``) are summed.
Sources with no in-range rows do not participate.  The six per-job fields
are then replaced by the merge of the high-detail sources alone.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

from app.config import (
    AggregationSettings,
    ExternalHTTPSettings,
    get_aggregation_settings,
    get_external_http_settings,
)
from app.connectors.base import FetchedRows
from app.connectors.sheets_connector import SheetsConnector
from app.connectors.table_store_connector import TableStoreConnector
from app.domain.date_range import DateRange
from app.domain.kpi import (
    COUNT_FIELDS,
    ENTITY_FIELDS,
    KPI_FIELDS,
    AggregationOutcome,
    AggregationStatus,
    DashboardSnapshot,
    KPIResult,
    SourceReport,
    SourceStatus,
    TimeSeriesPoint,
)
from app.domain.rows import ColumnRef, Row, RowLayout
from app.errors import (
    CONFIGURATION_MISSING,
    SOURCE_MALFORMED,
    SOURCE_UNREACHABLE,
    DashboardError,
)
from app.logging_utils import log_event
from app.schemas.dashboard_config import DashboardConfig, SourceConfig
from app.services.date_range_service import resolve_date_range
from app.services.demo_data_service import generate_demo_kpis, generate_demo_time_series
from app.services.entity_service import row_in_range
from app.services.row_inference import DATE_COLUMN_SAMPLE_SIZE, find_date_column, parse_row_date
from app.services.time_series_service import (
    daily_install_series,
    sort_points,
    time_series_points,
)
from kpi.base import FormulaContext
from kpi.line_items import LineItemKPIFormula
from kpi.scoring import ScoreCard
from kpi.service_calls import ServiceCallKPIFormula

logger = logging.getLogger(__name__)


class SourceConnector(Protocol):
    def fetch(
        self,
        source: SourceConfig,
        date_range: DateRange,
        *,
        credential: str | None = None,
    ) -> FetchedRows: ...


ConnectorFactory = Callable[[SourceConfig], SourceConnector]


def build_connector_factory(
    *,
    http_settings: ExternalHTTPSettings | None = None,
    settings: AggregationSettings | None = None,
) -> ConnectorFactory:
    """
    Default factory: one shared connector per source kind.
    """

    http_settings = http_settings or get_external_http_settings()
    settings = settings or get_aggregation_settings()
    sheets = SheetsConnector(http_settings=http_settings)
    tables = TableStoreConnector(
        http_settings=http_settings,
        fallback_row_limit=settings.table_fallback_row_limit,
    )

    def _factory(source: SourceConfig) -> SourceConnector:
        return tables if source.kind == "table" else sheets

    return _factory


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_kpi_values(
    weighted: Sequence[tuple[Mapping[str, float], int]],
    fields: Iterable[str] = KPI_FIELDS,
) -> dict[str, float]:
    """
    Combine per-source KPI values.

    Each entry is ``(values, weight)`` where weight is the source's in-range
    row count.  Entries with zero weight are ignored; a single remaining
    entry is returned unchanged.
    """
    contributing = [(values, weight) for values, weight in weighted if weight > 0]
    names = list(fields)
    if not contributing:
        return {}
    if len(contributing) == 1:
        values = contributing[0][0]
        return {name: values[name] for name in names if name in values}

    merged: dict[str, float] = {}
    for name in names:
        present = [(values[name], weight) for values, weight in contributing if name in values]
        if not present:
            continue
        if name in COUNT_FIELDS:
            merged[name] = sum(value for value, _ in present)
        else:
            total_weight = sum(weight for _, weight in present)
            merged[name] = sum(value * weight for value, weight in present) / total_weight
    return merged


# ---------------------------------------------------------------------------
# Internal records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _CacheEntry:
    fetched: FetchedRows
    date_range: DateRange


@dataclass(frozen=True)
class _SourceFetch:
    source: SourceConfig
    fetched: FetchedRows | None
    from_cache: bool = False
    error_kind: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class _PreparedSource:
    source: SourceConfig
    layout: RowLayout
    report: SourceReport
    rows: list[Row] = field(default_factory=list)


def _classify_failure(exc: BaseException) -> str:
    if isinstance(exc, DashboardError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return SOURCE_UNREACHABLE
    return SOURCE_MALFORMED


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class KPIAggregator:
    """
    Fetches, filters, computes and merges KPIs across every active source.

    The configuration is fixed at construction; the aggregator never reads
    settings from anywhere else.  Raw rows are cached per source id between
    calls (store-filtered rows only for the window they were fetched for);
    :meth:`clear_cache` or ``refresh=True`` forces a refetch.
    """

    def __init__(
        self,
        config: DashboardConfig,
        *,
        settings: AggregationSettings | None = None,
        connector_factory: ConnectorFactory | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._settings = settings or get_aggregation_settings()
        self._connector_factory = connector_factory or build_connector_factory(settings=self._settings)
        self._clock = clock
        self._rules = config.classification_rules()
        self._score_card = ScoreCard(config.score_overrides())
        self._base_formula = ServiceCallKPIFormula()
        self._detail_formula = LineItemKPIFormula()
        self._cache: dict[str, _CacheEntry] = {}
        self._generation = 0
        self._inflight: asyncio.Task[DashboardSnapshot] | None = None

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def get_kpis(self, date_range: DateRange, *, refresh: bool = False) -> AggregationOutcome:
        """
        Consolidated KPIs for *date_range*; never raises.
        """
        started = time.monotonic()
        try:
            return await self._aggregate(date_range, refresh=refresh, started=started)
        except Exception as exc:  # noqa: BLE001 - top-level boundary, degrade to demo data
            logger.exception("KPI aggregation failed unexpectedly")
            return self._fallback(
                date_range,
                AggregationStatus.SYNTHETIC,
                f"Aggregation failed ({exc}); showing demo data.",
                reports=(),
            )

    async def get_time_series(
        self, date_range: DateRange, *, refresh: bool = False
    ) -> list[TimeSeriesPoint]:
        """
        Trend points for *date_range*, ascending by date; never raises.

        Demo points (``is_synthetic=True``) are returned only when no trend
        source could be fetched.
        """
        try:
            return await self._collect_time_series(date_range, refresh=refresh)
        except Exception as exc:  # noqa: BLE001 - top-level boundary, degrade to demo data
            logger.exception("Time series collection failed unexpectedly")
            log_event(logger, logging.WARNING, "kpi_aggregation_fallback", scope="time_series", error=str(exc))
            return generate_demo_time_series(date_range)

    async def load_dashboard(
        self,
        time_frame: str,
        *,
        custom_range: DateRange | None = None,
        refresh: bool = False,
    ) -> DashboardSnapshot | None:
        """
        KPIs, trend and scores for a named period.

        Last request wins: a newer call cancels the one still in flight,
        and the superseded call returns ``None``.
        """
        self._generation += 1
        generation = self._generation
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

        task = asyncio.ensure_future(
            self._build_snapshot(time_frame, custom_range=custom_range, refresh=refresh)
        )
        self._inflight = task
        try:
            snapshot = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                self._log_discarded(time_frame, generation)
                return None
            raise
        if generation != self._generation:
            self._log_discarded(time_frame, generation)
            return None
        return snapshot

    async def test_sources(self) -> list[SourceReport]:
        """
        Fetch every active source once, bypassing the cache, and report
        whether it answered.  No KPI is computed.
        """
        date_range = resolve_date_range("year", self._clock())
        fetches = await self._fetch_all(self._config.active_sources(), date_range, refresh=True)
        reports: list[SourceReport] = []
        for fetch in fetches:
            if fetch.fetched is None:
                reports.append(self._failed_report(fetch))
                continue
            reports.append(
                SourceReport(
                    source_id=fetch.source.id,
                    source_name=fetch.source.display_name,
                    status=SourceStatus.OK,
                    row_count=len(fetch.fetched.rows) or fetch.fetched.fallback_row_count,
                )
            )
        return reports

    def clear_cache(self, source_id: str | None = None) -> None:
        if source_id is None:
            self._cache.clear()
        else:
            self._cache.pop(source_id, None)

    def score(self, kpis: KPIResult) -> dict[str, int]:
        return self._score_card.score_all(kpis)

    # ------------------------------------------------------------------
    # Internal: KPI aggregation
    # ------------------------------------------------------------------

    async def _aggregate(
        self, date_range: DateRange, *, refresh: bool, started: float
    ) -> AggregationOutcome:
        sources = self._config.active_sources("kpi")
        if not sources:
            return self._fallback(
                date_range,
                AggregationStatus.CONFIGURATION_REQUIRED,
                "No active KPI source is configured; showing demo data.",
                reports=(),
            )

        fetches = await self._fetch_all(sources, date_range, refresh=refresh)
        prepared = [self._prepare(fetch, date_range) for fetch in fetches]
        reports = tuple(item.report for item in prepared)
        contributing = [item for item in prepared if item.report.status is SourceStatus.OK]
        failed = [report for report in reports if report.status is SourceStatus.FAILED]

        if not contributing:
            if any(report.status is SourceStatus.NO_DATA for report in reports):
                log_event(
                    logger,
                    logging.INFO,
                    "kpi_aggregation_completed",
                    status=AggregationStatus.NO_DATA_IN_RANGE,
                    date_range=date_range,
                    sources=len(reports),
                    failed=len(failed),
                    elapsed_seconds=round(time.monotonic() - started, 3),
                )
                return AggregationOutcome(
                    kpis=KPIResult(),
                    status=AggregationStatus.NO_DATA_IN_RANGE,
                    message=(
                        f"No rows between {date_range.start.date()} and {date_range.end.date()}."
                    ),
                    date_range=date_range,
                    sources=reports,
                )
            if all(report.error_kind == CONFIGURATION_MISSING for report in failed):
                return self._fallback(
                    date_range,
                    AggregationStatus.CONFIGURATION_REQUIRED,
                    "Every source is missing configuration; showing demo data.",
                    reports=reports,
                )
            return self._fallback(
                date_range,
                AggregationStatus.SYNTHETIC,
                "No source could be fetched; showing demo data.",
                reports=reports,
            )

        base_values: list[tuple[Mapping[str, float], int]] = []
        detail_values: list[tuple[Mapping[str, float], int]] = []
        for item in contributing:
            context = self._context(item.layout)
            weight = item.report.rows_in_range
            base_values.append((self._base_formula.calculate(item.rows, context), weight))
            if item.source.is_high_detail:
                detail_values.append((self._detail_formula.calculate(item.rows, context), weight))

        merged = merge_kpi_values(base_values)
        merged.update(merge_kpi_values(detail_values, fields=ENTITY_FIELDS))
        kpis = KPIResult.from_partial(merged)

        if failed:
            status = AggregationStatus.PARTIAL
            message = (
                f"{len(failed)} of {len(reports)} sources failed: "
                + ", ".join(report.source_name for report in failed)
            )
        else:
            status = AggregationStatus.SUCCESS
            message = f"Aggregated {len(contributing)} of {len(reports)} sources."

        log_event(
            logger,
            logging.INFO,
            "kpi_aggregation_completed",
            status=status,
            sources=len(reports),
            contributing=len(contributing),
            failed=len(failed),
            date_range=date_range,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return AggregationOutcome(
            kpis=kpis,
            status=status,
            message=message,
            date_range=date_range,
            sources=reports,
        )

    def _fallback(
        self,
        date_range: DateRange,
        status: AggregationStatus,
        message: str,
        *,
        reports: tuple[SourceReport, ...],
    ) -> AggregationOutcome:
        log_event(
            logger,
            logging.WARNING,
            "kpi_aggregation_fallback",
            status=status,
            reason=message,
            sources=len(reports),
        )
        return AggregationOutcome(
            kpis=generate_demo_kpis(date_range),
            status=status,
            message=message,
            date_range=date_range,
            sources=reports,
        )

    def _context(self, layout: RowLayout) -> FormulaContext:
        thresholds = self._config.thresholds
        return FormulaContext(
            layout=layout,
            rules=self._rules,
            date_range=None,
            install_revenue_min=thresholds.install_revenue_min,
            diagnostic_fee_max=thresholds.diagnostic_fee_max,
            job_efficiency_default=thresholds.job_efficiency_default,
            department_filter=thresholds.department_filter,
            department_scope=thresholds.department_scope,
        )

    # ------------------------------------------------------------------
    # Internal: fetching
    # ------------------------------------------------------------------

    async def _fetch_all(
        self,
        sources: Sequence[SourceConfig],
        date_range: DateRange,
        *,
        refresh: bool,
    ) -> list[_SourceFetch]:
        return list(
            await asyncio.gather(
                *(self._fetch_one(source, date_range, refresh=refresh) for source in sources)
            )
        )

    async def _fetch_one(
        self,
        source: SourceConfig,
        date_range: DateRange,
        *,
        refresh: bool,
    ) -> _SourceFetch:
        if not refresh:
            cached = self._cached(source, date_range)
            if cached is not None:
                logger.debug("Cache hit for source %s", source.id)
                return _SourceFetch(source=source, fetched=cached, from_cache=True)

        try:
            connector = self._connector_factory(source)
            fetched = await asyncio.wait_for(
                asyncio.to_thread(
                    connector.fetch,
                    source,
                    date_range,
                    credential=self._config.credential_for(source),
                ),
                timeout=self._settings.source_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001 - per-source failure boundary
            kind = _classify_failure(exc)
            message = str(exc) or type(exc).__name__
            log_event(
                logger,
                logging.WARNING,
                "source_fetch_failed",
                source_id=source.id,
                error_kind=kind,
                error=message,
            )
            return _SourceFetch(source=source, fetched=None, error_kind=kind, error_message=message)

        if self._settings.cache_enabled:
            self._cache[source.id] = _CacheEntry(fetched=fetched, date_range=date_range)
        return _SourceFetch(source=source, fetched=fetched)

    def _cached(self, source: SourceConfig, date_range: DateRange) -> FetchedRows | None:
        if not self._settings.cache_enabled:
            return None
        entry = self._cache.get(source.id)
        if entry is None:
            return None
        if entry.fetched.prefiltered and entry.date_range != date_range:
            return None
        return entry.fetched

    # ------------------------------------------------------------------
    # Internal: row preparation
    # ------------------------------------------------------------------

    def _prepare(self, fetch: _SourceFetch, date_range: DateRange) -> _PreparedSource:
        source = fetch.source
        layout = source.row_layout()
        if fetch.fetched is None:
            return _PreparedSource(source=source, layout=layout, report=self._failed_report(fetch))

        fetched = fetch.fetched
        layout = layout.resolve(fetched.header)
        rows = list(fetched.rows)
        row_count = len(rows) or fetched.fallback_row_count
        date_ref = _locate_date_column(rows, layout)

        if date_ref is None and rows:
            if self._config.require_date_filter:
                message = "No date column could be located and a date filter is required."
                log_event(
                    logger,
                    logging.WARNING,
                    "source_fetch_failed",
                    source_id=source.id,
                    error_kind=SOURCE_MALFORMED,
                    error=message,
                )
                return _PreparedSource(
                    source=source,
                    layout=layout,
                    report=SourceReport(
                        source_id=source.id,
                        source_name=source.display_name,
                        status=SourceStatus.FAILED,
                        row_count=row_count,
                        date_filtered=False,
                        from_cache=fetch.from_cache,
                        error_kind=SOURCE_MALFORMED,
                        error_message=message,
                    ),
                )
            logger.warning("Source %s has no usable date column; using all %d rows", source.id, len(rows))
            in_range = rows
            date_filtered = False
        else:
            layout = replace(layout, date=date_ref)
            in_range = [row for row in rows if row_in_range(row, layout, date_range)]
            date_filtered = True

        report = SourceReport(
            source_id=source.id,
            source_name=source.display_name,
            status=SourceStatus.OK if in_range else SourceStatus.NO_DATA,
            row_count=row_count,
            rows_in_range=len(in_range),
            date_filtered=date_filtered,
            from_cache=fetch.from_cache,
        )
        logger.debug(
            "Prepared source %s rows=%d in_range=%d date_column=%r",
            source.id,
            row_count,
            len(in_range),
            date_ref,
        )
        return _PreparedSource(source=source, layout=layout, report=report, rows=in_range)

    @staticmethod
    def _failed_report(fetch: _SourceFetch) -> SourceReport:
        return SourceReport(
            source_id=fetch.source.id,
            source_name=fetch.source.display_name,
            status=SourceStatus.FAILED,
            from_cache=fetch.from_cache,
            error_kind=fetch.error_kind,
            error_message=fetch.error_message,
        )

    # ------------------------------------------------------------------
    # Internal: trends and snapshots
    # ------------------------------------------------------------------

    async def _collect_time_series(
        self, date_range: DateRange, *, refresh: bool
    ) -> list[TimeSeriesPoint]:
        trend_sources = self._config.active_sources("timeseries")
        detail_sources = [
            source for source in self._config.active_sources("kpi") if source.is_high_detail
        ]
        sources = [*trend_sources, *detail_sources]
        if not sources:
            return generate_demo_time_series(date_range)

        fetches = await self._fetch_all(sources, date_range, refresh=refresh)
        points: list[TimeSeriesPoint] = []
        fetched_any = False
        for fetch in fetches:
            prepared = self._prepare(fetch, date_range)
            if prepared.report.status is SourceStatus.FAILED:
                continue
            fetched_any = True
            if fetch.source.role == "timeseries":
                points.extend(
                    time_series_points(
                        prepared.rows,
                        prepared.layout,
                        None,
                        default_metric=fetch.source.display_name,
                    )
                )
            else:
                points.extend(daily_install_series(prepared.rows, self._context(prepared.layout)))

        if not fetched_any:
            log_event(logger, logging.WARNING, "kpi_aggregation_fallback", scope="time_series", sources=len(sources))
            return generate_demo_time_series(date_range)
        return sort_points(points)

    async def _build_snapshot(
        self,
        time_frame: str,
        *,
        custom_range: DateRange | None,
        refresh: bool,
    ) -> DashboardSnapshot:
        date_range = resolve_date_range(
            time_frame,
            self._clock(),
            week_mode=self._config.week_mode,
            custom_range=custom_range,
        )
        outcome = await self.get_kpis(date_range, refresh=refresh)
        trends = await self.get_time_series(date_range)
        return DashboardSnapshot(
            time_frame=time_frame,
            date_range=date_range,
            outcome=outcome,
            trends=tuple(trends),
            scores=self.score(outcome.kpis),
        )

    def _log_discarded(self, time_frame: str, generation: int) -> None:
        log_event(
            logger,
            logging.INFO,
            "dashboard_request_discarded",
            time_frame=time_frame,
            generation=generation,
            latest_generation=self._generation,
        )


def _locate_date_column(rows: Sequence[Row], layout: RowLayout) -> ColumnRef:
    """
    The layout's date column when it parses on the sampled rows, otherwise
    the first of the leading columns that does.
    """
    sample = rows[:DATE_COLUMN_SAMPLE_SIZE]
    if not sample:
        return layout.date
    if layout.date is not None and any(parse_row_date(row, layout.date) is not None for row in sample):
        return layout.date
    return find_date_column(rows)
