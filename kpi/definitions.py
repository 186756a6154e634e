"""
kpi/definitions.py

Catalog of the sixteen dashboard KPIs.

Each entry carries display metadata plus the default 1-10 score bands.
Bands are generated from a list of ascending lower edges so that they are
contiguous by construction: edge ``i`` starts band ``i``, which ends where
band ``i + 1`` starts; the last band is unbounded.  For "higher is better"
metrics the scores climb from 1 to 10 across the edges, for "lower is
better" metrics they fall from 10 to 1.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from app.domain.kpi import KPI_FIELDS, ScoreBand

MIN_SCORE = 1
MAX_SCORE = 10


@dataclass(frozen=True)
class KPIDefinition:
    """Display and grading metadata for one KPI."""

    id: str
    name: str
    unit: str
    description: str
    formula: str
    higher_is_better: bool
    score_ranges: tuple[ScoreBand, ...]


def _bands(edges: Sequence[float], *, higher_is_better: bool) -> tuple[ScoreBand, ...]:
    upper_edges = [*edges[1:], math.inf]
    bands = []
    for position, (lower, upper) in enumerate(zip(edges, upper_edges)):
        score = MIN_SCORE + position if higher_is_better else MAX_SCORE - position
        bands.append(ScoreBand(min=float(lower), max=float(upper), score=score))
    return tuple(bands)


def _definition(
    metric_id: str,
    name: str,
    unit: str,
    description: str,
    formula: str,
    edges: Sequence[float],
    *,
    higher_is_better: bool = True,
) -> KPIDefinition:
    return KPIDefinition(
        id=metric_id,
        name=name,
        unit=unit,
        description=description,
        formula=formula,
        higher_is_better=higher_is_better,
        score_ranges=_bands(edges, higher_is_better=higher_is_better),
    )


_SERVICE_LINE_RATE_EDGES = (0, 5, 10, 15, 20, 25, 30, 35, 40, 50)
_SERVICE_LINE_REVENUE_EDGES = (0, 40, 60, 80, 100, 120, 140, 160, 180, 200)

_DEFINITIONS: tuple[KPIDefinition, ...] = (
    _definition(
        "install_calls_percentage",
        "Install Calls Rate",
        "%",
        "Share of department jobs billed at or above the install threshold",
        "install jobs (revenue >= threshold) / department jobs x 100",
        (0, 1, 2, 3, 4, 5, 6, 7, 8, 10),
    ),
    _definition(
        "install_revenue_per_call",
        "Install Revenue per Call",
        "$",
        "Revenue of install jobs spread over every department job",
        "install job revenue / department jobs",
        (0, 400, 500, 600, 700, 800, 900, 1000, 1100, 1250),
    ),
    _definition(
        "jetting_jobs_percentage",
        "Jetting Jobs Rate",
        "%",
        "Share of department jobs that included jetting",
        "jobs with a jetting item / department jobs x 100",
        _SERVICE_LINE_RATE_EDGES,
    ),
    _definition(
        "jetting_revenue_per_call",
        "Jetting Revenue per Call",
        "$",
        "Jetting line-item revenue spread over every department job",
        "jetting revenue / department jobs",
        _SERVICE_LINE_REVENUE_EDGES,
    ),
    _definition(
        "descaling_jobs_percentage",
        "Descaling Jobs Rate",
        "%",
        "Share of department jobs that included descaling",
        "jobs with a descaling item / department jobs x 100",
        _SERVICE_LINE_RATE_EDGES,
    ),
    _definition(
        "descaling_revenue_per_call",
        "Descaling Revenue per Call",
        "$",
        "Descaling line-item revenue spread over every department job",
        "descaling revenue / department jobs",
        _SERVICE_LINE_REVENUE_EDGES,
    ),
    _definition(
        "membership_conversion_rate",
        "Membership Conversion",
        "%",
        "Share of customers who signed up for a membership",
        "membership calls / customers x 100",
        (0, 2, 4, 6, 8, 10, 12, 15, 18, 22),
    ),
    _definition(
        "total_memberships_renewed",
        "Memberships Renewed",
        "",
        "Number of memberships sold or renewed in the period",
        "count of membership calls",
        (0, 5, 10, 20, 35, 50, 75, 100, 150, 200),
    ),
    _definition(
        "tech_pay_percentage",
        "Tech Pay Percentage",
        "%",
        "Technician pay as a share of call revenue",
        "tech pay / revenue x 100",
        (0, 10, 15, 20, 25, 30, 35, 40, 45, 50),
        higher_is_better=False,
    ),
    _definition(
        "labor_revenue_per_hour",
        "Labor Revenue per Hour",
        "$",
        "Revenue earned per worked hour",
        "revenue / worked hours",
        (0, 50, 75, 100, 125, 150, 175, 200, 250, 300),
    ),
    _definition(
        "job_efficiency",
        "Job Efficiency",
        "%",
        "Allotted repair hours against actual repair time",
        "mean(estimated hours / actual hours x 100)",
        (0, 60, 70, 75, 80, 85, 90, 95, 100, 110),
    ),
    _definition(
        "zero_revenue_call_percentage",
        "Zero Revenue Calls",
        "%",
        "Share of calls that generated no revenue",
        "calls with amount = 0 / calls x 100",
        (0, 2, 4, 6, 8, 10, 12, 15, 18, 20),
        higher_is_better=False,
    ),
    _definition(
        "diagnostic_fee_only_percentage",
        "Diagnostic Fee Only",
        "%",
        "Share of calls that only charged the diagnostic fee",
        "calls with 0 < amount <= diagnostic fee / calls x 100",
        (0, 5, 8, 12, 15, 20, 25, 30, 35, 40),
        higher_is_better=False,
    ),
    _definition(
        "callback_percentage",
        "Callback Rate",
        "%",
        "Share of calls that required a callback",
        "callback calls / calls x 100",
        (0, 2, 3, 4, 5, 6, 8, 10, 12, 15),
        higher_is_better=False,
    ),
    _definition(
        "client_complaint_percentage",
        "Client Complaints",
        "%",
        "Share of calls that resulted in a complaint",
        "complaint calls / calls x 100",
        (0, 1, 1.5, 2, 3, 4, 5, 6, 8, 10),
        higher_is_better=False,
    ),
    _definition(
        "client_review_percentage",
        "Client Reviews",
        "%",
        "Share of customers who left a review",
        "reviewed calls / customers x 100",
        (0, 10, 20, 30, 40, 50, 60, 70, 80, 90),
    ),
)

KPI_DEFINITIONS: dict[str, KPIDefinition] = {
    definition.id: definition for definition in _DEFINITIONS
}

if tuple(KPI_DEFINITIONS) != KPI_FIELDS:
    raise RuntimeError("KPI catalog is out of sync with KPIResult fields.")


def get_definition(metric_id: str) -> KPIDefinition | None:
    return KPI_DEFINITIONS.get(metric_id)
