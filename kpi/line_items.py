"""
kpi/line_items.py

Per-job KPI formula for high-detail line-item sources.

Line items are grouped by job (see :class:`app.services.entity_service.EntityIndex`)
after the department and date filters.  The department filter always
applies here, whatever the configured department scope.

Formulas
--------
Install %            = jobs whose total revenue >= install_revenue_min / jobs
Install revenue/call = total revenue of those jobs / jobs
Jetting %            = jobs with at least one jetting item / jobs
Jetting revenue/call = revenue of jetting items / jobs
Descaling %          = jobs with at least one descaling item / jobs
Descaling rev/call   = revenue of descaling items / jobs

All six are 0.0 when no job survives the filters.
"""

from __future__ import annotations

from collections.abc import Sequence

from app.domain.rows import Row
from app.services.entity_service import EntityIndex
from app.services.row_inference import parse_amount
from kpi.base import BaseKPIFormula, FormulaContext, safe_percentage, safe_ratio
from kpi.rules import RowRule


class LineItemKPIFormula(BaseKPIFormula):
    """
    Unique-job calculations for the install, jetting and descaling pairs.

    All arithmetic is self-contained.  No I/O, no logging, no side effects.
    """

    def calculate(self, rows: Sequence[Row], context: FormulaContext) -> dict[str, float]:
        index = EntityIndex.build(
            rows,
            date_range=context.date_range,
            department_filter=context.effective_department_filter,
            layout=context.layout,
        )
        return calculate_from_index(index, context)


def calculate_from_index(index: EntityIndex, context: FormulaContext) -> dict[str, float]:
    """Apply the per-job formulas to an already-built :class:`EntityIndex`."""
    job_count = len(index)
    install_revenues = [
        revenue
        for revenue in index.revenue_by_entity().values()
        if revenue >= context.install_revenue_min
    ]
    jetting_pct, jetting_revenue = _service_line(index, context.rules.jetting)
    descaling_pct, descaling_revenue = _service_line(index, context.rules.descaling)
    return {
        "install_calls_percentage": safe_percentage(len(install_revenues), job_count),
        "install_revenue_per_call": safe_ratio(sum(install_revenues), job_count),
        "jetting_jobs_percentage": jetting_pct,
        "jetting_revenue_per_call": jetting_revenue,
        "descaling_jobs_percentage": descaling_pct,
        "descaling_revenue_per_call": descaling_revenue,
    }


def _service_line(index: EntityIndex, rule: RowRule) -> tuple[float, float]:
    """Share of jobs with a matching item, and matching-item revenue per job."""
    matched_jobs = 0
    matched_revenue = 0.0
    for items in index.rows_by_entity.values():
        matching = [row for row in items if rule.matches(row, index.layout)]
        if matching:
            matched_jobs += 1
            matched_revenue += sum(parse_amount(index.layout.get(row, "amount")) for row in matching)
    job_count = len(index)
    return safe_percentage(matched_jobs, job_count), safe_ratio(matched_revenue, job_count)
