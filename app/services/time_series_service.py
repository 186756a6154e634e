"""
app/services/time_series_service.py

Trend extraction from raw rows.

Two producers feed the dashboard trend chart:

* time-series sources, whose rows are already ``date | value | metric``
* high-detail line-item sources, from which a daily install rate is derived
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import date

from app.domain.date_range import DateRange
from app.domain.kpi import TimeSeriesPoint
from app.domain.rows import Row, RowLayout
from app.services.row_inference import is_blank, parse_amount, parse_row_date
from kpi.base import FormulaContext
from kpi.line_items import LineItemKPIFormula

logger = logging.getLogger(__name__)

INSTALL_TREND_METRIC = "install_calls_percentage"


def time_series_points(
    rows: Sequence[Row],
    layout: RowLayout,
    date_range: DateRange | None,
    *,
    default_metric: str,
) -> list[TimeSeriesPoint]:
    """
    Map pre-aggregated rows to points; rows without a parseable date are dropped.

    A blank metric cell falls back to *default_metric*.
    """
    points: list[TimeSeriesPoint] = []
    for row in rows:
        row_date = parse_row_date(row, layout.date)
        if row_date is None:
            continue
        if date_range is not None and not date_range.contains(row_date):
            continue
        metric = layout.get(row, "metric")
        points.append(
            TimeSeriesPoint(
                date=row_date,
                value=parse_amount(layout.get(row, "value")),
                metric=default_metric if is_blank(metric) else str(metric).strip(),
            )
        )
    return points


def daily_install_series(rows: Sequence[Row], context: FormulaContext) -> list[TimeSeriesPoint]:
    """
    Install rate per invoice date for a line-item source.

    Rows are bucketed by their own date inside ``context.date_range``; each
    day is scored with :class:`LineItemKPIFormula` on that day's rows only.
    """
    by_day: dict[date, list[Row]] = {}
    for row in rows:
        row_date = parse_row_date(row, context.layout.date)
        if row_date is None:
            continue
        if context.date_range is not None and not context.date_range.contains(row_date):
            continue
        by_day.setdefault(row_date, []).append(row)

    formula = LineItemKPIFormula()
    day_context = replace(context, date_range=None)
    points = [
        TimeSeriesPoint(
            date=day,
            value=formula.calculate(day_rows, day_context)[INSTALL_TREND_METRIC],
            metric=INSTALL_TREND_METRIC,
        )
        for day, day_rows in sorted(by_day.items())
    ]
    logger.debug("daily_install_series produced %d points", len(points))
    return points


def sort_points(points: Sequence[TimeSeriesPoint]) -> list[TimeSeriesPoint]:
    """Ascending by date, then metric name."""
    return sorted(points, key=lambda point: (point.date, point.metric))
