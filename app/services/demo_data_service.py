"""
app/services/demo_data_service.py

Synthetic placeholder data shown when no real source yields rows.

Values are plausible baselines scaled by the length of the requested
window.  They are deterministic for a given window and are always
flagged as synthetic by the caller (``AggregationStatus.SYNTHETIC`` on
KPI outcomes, ``is_synthetic=True`` on trend points).
"""

from __future__ import annotations

import math
from typing import Final

from app.domain.date_range import DateRange
from app.domain.kpi import KPIResult, TimeSeriesPoint
from app.services.date_range_service import days_in_range

BASELINE_KPIS: Final[KPIResult] = KPIResult(
    install_calls_percentage=6.5,
    install_revenue_per_call=850.0,
    jetting_jobs_percentage=28.0,
    jetting_revenue_per_call=145.0,
    descaling_jobs_percentage=18.0,
    descaling_revenue_per_call=120.0,
    membership_conversion_rate=15.8,
    total_memberships_renewed=42.0,
    tech_pay_percentage=18.5,
    labor_revenue_per_hour=125.75,
    job_efficiency=92.3,
    zero_revenue_call_percentage=3.2,
    diagnostic_fee_only_percentage=12.5,
    callback_percentage=4.5,
    client_complaint_percentage=2.1,
    client_review_percentage=87.5,
)

# Volume-like metrics grow with the window.
VOLUME_FIELDS: Final[frozenset[str]] = frozenset({"total_memberships_renewed"})
# "Bad" rates shrink as the window grows, never below the floor.
INVERSE_FIELDS: Final[frozenset[str]] = frozenset(
    {"callback_percentage", "client_complaint_percentage"}
)
INVERSE_FLOOR: Final[float] = 0.5

DEMO_TREND_DAYS: Final[int] = 30
DEMO_TREND_METRIC: Final[str] = "install_calls_percentage"


def time_frame_multiplier(date_range: DateRange) -> float:
    """Scale factor for the window length in whole calendar days."""
    days = len(days_in_range(date_range)) - 1
    if days <= 1:
        return 0.3
    if days <= 7:
        return 0.6
    if days <= 31:
        return 1.0
    if days <= 90:
        return 1.1
    return 1.2


def generate_demo_kpis(date_range: DateRange) -> KPIResult:
    """All sixteen KPIs populated from the baselines, scaled to *date_range*."""
    multiplier = time_frame_multiplier(date_range)
    values: dict[str, float] = {}
    for name, baseline in BASELINE_KPIS.to_dict().items():
        if name in VOLUME_FIELDS:
            values[name] = round(baseline * multiplier)
        elif name in INVERSE_FIELDS:
            values[name] = round(max(INVERSE_FLOOR, baseline / multiplier), 2)
        else:
            values[name] = baseline
    return KPIResult.from_partial(values)


def generate_demo_time_series(
    date_range: DateRange,
    metric: str = DEMO_TREND_METRIC,
) -> list[TimeSeriesPoint]:
    """
    One synthetic point per day for the last (at most) 30 days of the window.

    A slow sine wave around the metric's baseline keeps the chart readable
    and the output reproducible.
    """
    baseline = getattr(BASELINE_KPIS, metric, 0.0) or 1.0
    days = days_in_range(date_range)[-DEMO_TREND_DAYS:]
    return [
        TimeSeriesPoint(
            date=day,
            value=round(baseline * (1.0 + 0.15 * math.sin(day.toordinal() / 3.0)), 2),
            metric=metric,
            is_synthetic=True,
        )
        for day in days
    ]
