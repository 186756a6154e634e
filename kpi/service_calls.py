"""
kpi/service_calls.py

Row-level KPI formula for service-call sources.

Every row is one service call.  This formula produces all sixteen KPIs;
for line-item sources the six per-job fields are later replaced by
:class:`kpi.line_items.LineItemKPIFormula`.

Formulas
--------
Install %               = calls with amount >= install_revenue_min / department calls
Install revenue/call    = revenue of those calls / department calls
Jetting / descaling %   = department calls matching the rule / department calls
Jetting / descaling rev = revenue of matching calls / department calls
Zero revenue %          = calls with amount == 0 / calls
Diagnostic fee only %   = calls with 0 < amount <= diagnostic_fee_max / calls
Callback / complaint %  = calls matching the rule / calls
Membership conversion % = membership calls / distinct customers (calls without a customer column)
Memberships renewed     = membership calls
Client review %         = calls with a review / distinct customers (calls without a customer column)
Tech pay %              = tech pay / revenue
Labor revenue per hour  = revenue / duration hours
Job efficiency          = mean(estimated / actual * 100) over calls carrying both hours

"Department calls" are all calls when the layout has no department column
or no department filter is configured.  Division-by-zero cases return 0.0.
"""

from __future__ import annotations

from collections.abc import Sequence

from app.domain.rows import Row
from app.services.entity_service import department_matches, normalize_entity_id, row_in_range
from app.services.row_inference import is_blank, parse_amount
from kpi.base import BaseKPIFormula, FormulaContext, safe_percentage, safe_ratio
from kpi.rules import RowRule

# Review cells that mean "no review left".
_EMPTY_REVIEW_MARKERS = frozenset({"0", "no", "none", "n/a", "na", "-"})


class ServiceCallKPIFormula(BaseKPIFormula):
    """
    Deterministic service-call KPI calculations with zero-denominator guards.

    All arithmetic is self-contained.  No I/O, no logging, no side effects.
    """

    def calculate(self, rows: Sequence[Row], context: FormulaContext) -> dict[str, float]:
        in_range = [row for row in rows if row_in_range(row, context.layout, context.date_range)]
        department_filter = context.effective_department_filter
        department_rows = [
            row for row in in_range if department_matches(row, context.layout, department_filter)
        ]
        calls = department_rows if context.department_scope == "all_metrics" else in_range

        install_pct, install_revenue = _install(department_rows, context)
        jetting_pct, jetting_revenue = _service_line(department_rows, context, context.rules.jetting)
        descaling_pct, descaling_revenue = _service_line(
            department_rows, context, context.rules.descaling
        )
        conversion, renewed = _memberships(calls, context)
        revenue = _total(calls, context, "amount")

        return {
            "install_calls_percentage": install_pct,
            "install_revenue_per_call": install_revenue,
            "jetting_jobs_percentage": jetting_pct,
            "jetting_revenue_per_call": jetting_revenue,
            "descaling_jobs_percentage": descaling_pct,
            "descaling_revenue_per_call": descaling_revenue,
            "membership_conversion_rate": conversion,
            "total_memberships_renewed": renewed,
            "tech_pay_percentage": safe_percentage(_total(calls, context, "tech_pay"), revenue),
            "labor_revenue_per_hour": safe_ratio(revenue, _total(calls, context, "duration_hours")),
            "job_efficiency": _job_efficiency(calls, context),
            "zero_revenue_call_percentage": _zero_revenue(calls, context),
            "diagnostic_fee_only_percentage": _diagnostic_only(calls, context),
            "callback_percentage": _matching_share(calls, context, context.rules.callback),
            "client_complaint_percentage": _matching_share(calls, context, context.rules.complaint),
            "client_review_percentage": _client_reviews(calls, context),
        }


# ---------------------------------------------------------------------------
# Pure formula functions
# ---------------------------------------------------------------------------


def _amount(row: Row, context: FormulaContext) -> float:
    return parse_amount(context.layout.get(row, "amount"))


def _total(rows: Sequence[Row], context: FormulaContext, role: str) -> float:
    if not context.layout.has(role):
        return 0.0
    return sum(parse_amount(context.layout.get(row, role)) for row in rows)


def _install(rows: Sequence[Row], context: FormulaContext) -> tuple[float, float]:
    """Install calls clear the revenue threshold."""
    install_amounts = [
        amount
        for amount in (_amount(row, context) for row in rows)
        if amount >= context.install_revenue_min
    ]
    return (
        safe_percentage(len(install_amounts), len(rows)),
        safe_ratio(sum(install_amounts), len(rows)),
    )


def _service_line(
    rows: Sequence[Row], context: FormulaContext, rule: RowRule
) -> tuple[float, float]:
    matching = [row for row in rows if rule.matches(row, context.layout)]
    return (
        safe_percentage(len(matching), len(rows)),
        safe_ratio(sum(_amount(row, context) for row in matching), len(rows)),
    )


def _zero_revenue(rows: Sequence[Row], context: FormulaContext) -> float:
    zero = sum(1 for row in rows if _amount(row, context) == 0)
    return safe_percentage(zero, len(rows))


def _diagnostic_only(rows: Sequence[Row], context: FormulaContext) -> float:
    """Calls billed a positive amount no larger than the diagnostic fee."""
    diagnostic = sum(
        1 for row in rows if 0 < _amount(row, context) <= context.diagnostic_fee_max
    )
    return safe_percentage(diagnostic, len(rows))


def _matching_share(rows: Sequence[Row], context: FormulaContext, rule: RowRule) -> float:
    matching = sum(1 for row in rows if rule.matches(row, context.layout))
    return safe_percentage(matching, len(rows))


def _customer_base(rows: Sequence[Row], context: FormulaContext) -> int:
    """Distinct customers when the layout names a customer column, else the row count."""
    if not context.layout.has("customer"):
        return len(rows)
    customers = {
        customer_id
        for customer_id in (
            normalize_entity_id(context.layout.get(row, "customer")) for row in rows
        )
        if customer_id is not None
    }
    return len(customers) or len(rows)


def _memberships(rows: Sequence[Row], context: FormulaContext) -> tuple[float, float]:
    members = sum(1 for row in rows if context.rules.membership.matches(row, context.layout))
    return safe_percentage(members, _customer_base(rows, context)), float(members)


def _client_reviews(rows: Sequence[Row], context: FormulaContext) -> float:
    if not context.layout.has("review"):
        return 0.0
    reviewed = 0
    for row in rows:
        value = context.layout.get(row, "review")
        if is_blank(value) or str(value).strip().lower() in _EMPTY_REVIEW_MARKERS:
            continue
        reviewed += 1
    return safe_percentage(reviewed, _customer_base(rows, context))


def _job_efficiency(rows: Sequence[Row], context: FormulaContext) -> float:
    """
    Mean of estimated / actual hours as a percentage.

    Calls missing either figure, or with non-positive actual hours, are
    skipped; with none left the configured default is returned.
    """
    layout = context.layout
    if not (layout.has("estimated_hours") and layout.has("actual_hours")):
        return context.job_efficiency_default
    ratios: list[float] = []
    for row in rows:
        estimated = parse_amount(layout.get(row, "estimated_hours"))
        actual = parse_amount(layout.get(row, "actual_hours"))
        if estimated > 0 and actual > 0:
            ratios.append(estimated / actual * 100.0)
    if not ratios:
        return context.job_efficiency_default
    return sum(ratios) / len(ratios)
