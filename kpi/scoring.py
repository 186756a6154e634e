"""
kpi/scoring.py

Score-range overlay: grades KPI values on a 1-10 scale.

A score band is the half-open interval ``[min, max)`` (``max`` may be
unbounded).  Evaluation walks the bands in order and returns the score of
the first one containing the value, or 0 when none does.  Bands coming
from configuration are validated up front by :func:`validate_score_bands`
so that evaluation order never decides an ambiguous value.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from app.domain.kpi import KPI_FIELDS, KPIResult, ScoreBand
from app.errors import ScoreRangeConfigError
from kpi.definitions import KPI_DEFINITIONS, MAX_SCORE, MIN_SCORE

logger = logging.getLogger(__name__)

NO_SCORE = 0


def score_value(value: float, bands: Sequence[ScoreBand]) -> int:
    """Score of the first band containing *value*; 0 when none does."""
    for band in bands:
        if band.contains(value):
            return band.score
    return NO_SCORE


def validate_score_bands(metric_id: str, bands: Sequence[ScoreBand]) -> tuple[ScoreBand, ...]:
    """
    Check that *bands* cover ``[<=0, inf)`` exactly once and return them sorted.

    Rules: at least one band; every band has ``min < max`` and a score in
    1..10; sorted by ``min`` neighbours touch without gap or overlap; the
    first band starts at or below zero; the last band is unbounded.

    Raises
    ------
    ScoreRangeConfigError
        Listing every violated rule.
    """
    problems: list[str] = []
    ordered = sorted(bands, key=lambda band: band.min)
    if not ordered:
        raise ScoreRangeConfigError(metric_id, ["at least one range is required"])

    for position, band in enumerate(ordered):
        label = f"range {position + 1} [{band.min}, {band.max})"
        if not band.min < band.max:
            problems.append(f"{label}: min must be below max")
        if not MIN_SCORE <= band.score <= MAX_SCORE:
            problems.append(f"{label}: score {band.score} outside {MIN_SCORE}..{MAX_SCORE}")
        if position > 0:
            previous = ordered[position - 1]
            if previous.max < band.min:
                problems.append(f"{label}: gap after {previous.max}")
            elif previous.max > band.min:
                problems.append(f"{label}: overlaps the previous range")

    if ordered[0].min > 0:
        problems.append(f"first range must start at or below 0, starts at {ordered[0].min}")
    if not ordered[-1].unbounded:
        problems.append(f"last range must be unbounded, ends at {ordered[-1].max}")

    if problems:
        raise ScoreRangeConfigError(metric_id, problems)
    return tuple(ordered)


class ScoreCard:
    """
    Grades KPI results against the default catalog ranges plus overrides.

    ``overrides`` maps a KPI field name to its validated bands; metrics
    without an override use :data:`kpi.definitions.KPI_DEFINITIONS`.
    """

    def __init__(self, overrides: Mapping[str, Sequence[ScoreBand]] | None = None) -> None:
        unknown = set(overrides or {}) - set(KPI_FIELDS)
        if unknown:
            raise ScoreRangeConfigError(", ".join(sorted(unknown)), ["unknown metric id"])
        self._bands: dict[str, tuple[ScoreBand, ...]] = {
            metric_id: definition.score_ranges
            for metric_id, definition in KPI_DEFINITIONS.items()
        }
        for metric_id, bands in (overrides or {}).items():
            self._bands[metric_id] = tuple(bands)

    def bands_for(self, metric_id: str) -> tuple[ScoreBand, ...]:
        return self._bands.get(metric_id, ())

    def score(self, metric_id: str, value: float) -> int:
        return score_value(value, self.bands_for(metric_id))

    def score_all(self, result: KPIResult) -> dict[str, int]:
        values = result.to_dict()
        return {metric_id: self.score(metric_id, values[metric_id]) for metric_id in KPI_FIELDS}


def score_kpis(
    result: KPIResult,
    overrides: Mapping[str, Sequence[ScoreBand]] | None = None,
) -> dict[str, int]:
    """Score all sixteen KPIs of *result*; see :class:`ScoreCard`."""
    return ScoreCard(overrides).score_all(result)
