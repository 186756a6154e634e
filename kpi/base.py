"""
kpi/base.py

Abstract base class for the dashboard KPI formulas, plus the context
object and division helpers they share.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from app.domain.date_range import DateRange
from app.domain.rows import Row, RowLayout
from kpi.rules import ClassificationRules

DepartmentScope = Literal["entity_metrics", "all_metrics"]

DEFAULT_INSTALL_REVENUE_MIN = 10000.0
DEFAULT_DIAGNOSTIC_FEE_MAX = 150.0
DEFAULT_JOB_EFFICIENCY = 95.0
DEFAULT_DEPARTMENT = "Drain Cleaning"


@dataclass(frozen=True)
class FormulaContext:
    """
    Everything a formula needs besides the rows themselves.

    ``date_range`` is ``None`` when the rows are already restricted to the
    window (or no date column exists); formulas then apply no date filter.
    ``department_scope`` decides whether ``department_filter`` narrows only
    the per-job metrics or every metric.
    """

    layout: RowLayout
    rules: ClassificationRules = field(default_factory=ClassificationRules)
    date_range: DateRange | None = None
    install_revenue_min: float = DEFAULT_INSTALL_REVENUE_MIN
    diagnostic_fee_max: float = DEFAULT_DIAGNOSTIC_FEE_MAX
    job_efficiency_default: float = DEFAULT_JOB_EFFICIENCY
    department_filter: str | None = DEFAULT_DEPARTMENT
    department_scope: DepartmentScope = "entity_metrics"

    @property
    def effective_department_filter(self) -> str | None:
        """The filter, or ``None`` when the layout has no department column."""
        if not self.layout.has("department"):
            return None
        return self.department_filter


class BaseKPIFormula(ABC):
    """
    Contract for KPI formula implementations.

    Subclasses receive raw rows plus a :class:`FormulaContext` and return a
    plain dictionary of metric values keyed by :class:`~app.domain.kpi.KPIResult`
    field name.  A formula may return a subset of the fields.

    No I/O, no logging, and no side effects are permitted inside
    :meth:`calculate`.
    """

    @abstractmethod
    def calculate(self, rows: Sequence[Row], context: FormulaContext) -> dict[str, float]:
        """
        Compute KPI metrics from *rows* and return a result dictionary.

        Parameters
        ----------
        rows:
            Raw source rows addressed through ``context.layout``.
        context:
            Thresholds, rules and filters for this calculation.

        Returns
        -------
        dict[str, float]
            Computed metrics keyed by metric name.
        """


# ---------------------------------------------------------------------------
# Safe division
# ---------------------------------------------------------------------------


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 when the denominator is zero."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


def safe_percentage(numerator: float, denominator: float) -> float:
    """``safe_ratio`` on a 0-100 scale."""
    return safe_ratio(numerator, denominator) * 100.0
