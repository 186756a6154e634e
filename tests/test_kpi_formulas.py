"""
tests/test_kpi_formulas.py

Pytest unit tests for the service-call and line-item KPI formulas.

All tests are pure Python: rows in, metric dictionary out.

Coverage
--------
- Per-job install / jetting / descaling over line items (worked example)
- Row-level rates for service-call sheets
- Thresholds and department scope from the context
- Injectable classification rules
- Zero-denominator guards across every metric
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import date

import pytest

from app.domain.date_range import DateRange
from app.domain.kpi import ENTITY_FIELDS, KPI_FIELDS
from app.domain.rows import LINE_ITEM_LAYOUT, SERVICE_CALL_LAYOUT, RowLayout
from kpi.base import FormulaContext, safe_percentage, safe_ratio
from kpi.line_items import LineItemKPIFormula
from kpi.rules import ClassificationRules, KeywordRule
from kpi.service_calls import ServiceCallKPIFormula

JANUARY = DateRange.for_days(date(2024, 1, 1), date(2024, 1, 31))


@pytest.fixture()
def line_items() -> list[dict]:
    return [
        {
            "Job": "J1",
            "Department": "Drain Cleaning",
            "Line Item": "Jetting svc",
            "Price": "$12,000",
            "Invoice Date": "2024-01-05",
        },
        {
            "Job": "J1",
            "Department": "Drain Cleaning",
            "Line Item": "Camera",
            "Price": "$500",
            "Invoice Date": "2024-01-05",
        },
        {
            "Job": "J2",
            "Department": "Drain Cleaning",
            "Line Item": "Snake",
            "Price": "$200",
            "Invoice Date": "2024-01-06",
        },
    ]


@pytest.fixture()
def line_item_context() -> FormulaContext:
    return FormulaContext(layout=LINE_ITEM_LAYOUT, date_range=JANUARY)


@pytest.fixture()
def service_calls() -> list[list]:
    # Date | Service Type | Revenue | Duration | Tech Pay | Rating | Callback | Complaint
    return [
        ["1/2/2024", "Install", "$12,000", "8", "1200", "5", "No", "No"],
        ["1/3/2024", "Drain Cleaning", "$300", "2", "60", "", "Yes", "No"],
        ["1/4/2024", "Jetting", "$700", "3", "140", "4", "No", "Issue reported"],
        ["1/5/2024", "Descaling", "$0", "1", "0", "", "No", "No"],
        ["1/6/2024", "Diagnostic", "$99", "1", "20", "no", "No", "No"],
        ["1/7/2024", "Membership plan", "$150", "1", "30", "5", "No", "No"],
    ]


@pytest.fixture()
def service_context() -> FormulaContext:
    return FormulaContext(layout=SERVICE_CALL_LAYOUT, date_range=JANUARY)


class TestSafeDivision:
    def test_zero_denominator(self) -> None:
        assert safe_ratio(5, 0) == 0.0
        assert safe_percentage(5, 0) == 0.0

    def test_percentage_scale(self) -> None:
        assert safe_percentage(1, 4) == 25.0


class TestLineItemKPIFormula:
    def test_worked_example(self, line_items: list[dict], line_item_context: FormulaContext) -> None:
        result = LineItemKPIFormula().calculate(line_items, line_item_context)

        assert result["install_calls_percentage"] == pytest.approx(50.0)
        assert result["install_revenue_per_call"] == pytest.approx(6250.0)
        assert result["jetting_jobs_percentage"] == pytest.approx(50.0)
        assert result["jetting_revenue_per_call"] == pytest.approx(6000.0)
        assert result["descaling_jobs_percentage"] == 0.0
        assert result["descaling_revenue_per_call"] == 0.0

    def test_returns_only_entity_fields(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        result = LineItemKPIFormula().calculate(line_items, line_item_context)
        assert set(result) == set(ENTITY_FIELDS)

    def test_rows_outside_range_are_ignored(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        february = DateRange.for_days(date(2024, 2, 1), date(2024, 2, 29))
        result = LineItemKPIFormula().calculate(line_items, replace(line_item_context, date_range=february))
        assert all(value == 0.0 for value in result.values())

    def test_department_filter_applies(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        plumbing = replace(line_item_context, department_filter="Plumbing")
        result = LineItemKPIFormula().calculate(line_items, plumbing)
        assert result["install_calls_percentage"] == 0.0

    def test_install_threshold_is_configurable(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        low = replace(line_item_context, install_revenue_min=100.0)
        result = LineItemKPIFormula().calculate(line_items, low)
        assert result["install_calls_percentage"] == pytest.approx(100.0)
        assert result["install_revenue_per_call"] == pytest.approx((12500 + 200) / 2)

    def test_injected_rule_replaces_keyword_matching(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        rules = ClassificationRules(jetting=KeywordRule(("snake",)))
        result = LineItemKPIFormula().calculate(line_items, replace(line_item_context, rules=rules))
        assert result["jetting_jobs_percentage"] == pytest.approx(50.0)
        assert result["jetting_revenue_per_call"] == pytest.approx(100.0)

    def test_order_and_duplicate_invariance_of_job_count(
        self, line_items: list[dict], line_item_context: FormulaContext
    ) -> None:
        reordered = list(reversed(line_items))
        a = LineItemKPIFormula().calculate(line_items, line_item_context)
        b = LineItemKPIFormula().calculate(reordered, line_item_context)
        assert a == pytest.approx(b)


class TestServiceCallKPIFormula:
    def test_returns_every_kpi_field(
        self, service_calls: list[list], service_context: FormulaContext
    ) -> None:
        result = ServiceCallKPIFormula().calculate(service_calls, service_context)
        assert set(result) == set(KPI_FIELDS)

    def test_row_level_rates(self, service_calls: list[list], service_context: FormulaContext) -> None:
        result = ServiceCallKPIFormula().calculate(service_calls, service_context)

        # The sheet layout has no department column, so every call counts.
        assert result["install_calls_percentage"] == pytest.approx(100 / 6)
        assert result["install_revenue_per_call"] == pytest.approx(12000 / 6)
        assert result["jetting_jobs_percentage"] == pytest.approx(100 / 6)
        assert result["jetting_revenue_per_call"] == pytest.approx(700 / 6)
        assert result["descaling_jobs_percentage"] == pytest.approx(100 / 6)
        assert result["zero_revenue_call_percentage"] == pytest.approx(100 / 6)
        assert result["diagnostic_fee_only_percentage"] == pytest.approx(200 / 6)
        assert result["callback_percentage"] == pytest.approx(100 / 6)
        assert result["client_complaint_percentage"] == pytest.approx(100 / 6)

    def test_memberships_and_reviews(
        self, service_calls: list[list], service_context: FormulaContext
    ) -> None:
        result = ServiceCallKPIFormula().calculate(service_calls, service_context)
        assert result["total_memberships_renewed"] == 1.0
        assert result["membership_conversion_rate"] == pytest.approx(100 / 6)
        # "5", "4", "5" count; blank and "no" do not.
        assert result["client_review_percentage"] == pytest.approx(50.0)

    def test_money_and_hours(self, service_calls: list[list], service_context: FormulaContext) -> None:
        result = ServiceCallKPIFormula().calculate(service_calls, service_context)
        revenue = 12000 + 300 + 700 + 0 + 99 + 150
        assert result["tech_pay_percentage"] == pytest.approx(1450 / revenue * 100)
        assert result["labor_revenue_per_hour"] == pytest.approx(revenue / 16)

    def test_job_efficiency_defaults_without_hour_columns(
        self, service_calls: list[list], service_context: FormulaContext
    ) -> None:
        result = ServiceCallKPIFormula().calculate(service_calls, service_context)
        assert result["job_efficiency"] == 95.0

    def test_job_efficiency_averages_estimated_over_actual(self) -> None:
        layout = RowLayout(date=0, amount=1, estimated_hours=2, actual_hours=3)
        rows = [
            ["1/2/2024", 100, 2, 2],
            ["1/3/2024", 100, 3, 4],
            ["1/4/2024", 100, "", 4],
        ]
        result = ServiceCallKPIFormula().calculate(rows, FormulaContext(layout=layout))
        assert result["job_efficiency"] == pytest.approx((100 + 75) / 2)

    def test_diagnostic_threshold_is_configurable(
        self, service_calls: list[list], service_context: FormulaContext
    ) -> None:
        wider = replace(service_context, diagnostic_fee_max=300.0)
        result = ServiceCallKPIFormula().calculate(service_calls, wider)
        assert result["diagnostic_fee_only_percentage"] == pytest.approx(300 / 6)

    def test_department_scope_all_metrics(self, line_items: list[dict]) -> None:
        rows = line_items + [
            {
                "Job": "J9",
                "Department": "Plumbing",
                "Line Item": "Valve",
                "Price": "$0",
                "Invoice Date": "2024-01-07",
            }
        ]
        entity_only = FormulaContext(layout=LINE_ITEM_LAYOUT)
        everything = replace(entity_only, department_scope="all_metrics")

        narrow = ServiceCallKPIFormula().calculate(rows, entity_only)
        wide = ServiceCallKPIFormula().calculate(rows, everything)

        assert narrow["zero_revenue_call_percentage"] == pytest.approx(25.0)
        assert wide["zero_revenue_call_percentage"] == 0.0

    def test_customer_column_sets_the_conversion_denominator(self) -> None:
        layout = RowLayout(date=0, customer=1, description=2)
        rows = [
            ["1/2/2024", "C1", "Membership sold"],
            ["1/3/2024", "C1", "Repair"],
            ["1/4/2024", "C2", "Repair"],
            ["1/5/2024", "C2", "Repair"],
        ]
        result = ServiceCallKPIFormula().calculate(rows, FormulaContext(layout=layout))
        assert result["membership_conversion_rate"] == pytest.approx(50.0)


class TestZeroDenominators:
    @pytest.mark.parametrize("layout", [SERVICE_CALL_LAYOUT, LINE_ITEM_LAYOUT])
    def test_empty_rows_give_finite_zeros(self, layout: RowLayout) -> None:
        context = FormulaContext(layout=layout, date_range=JANUARY)
        result = ServiceCallKPIFormula().calculate([], context)
        result.update(LineItemKPIFormula().calculate([], context))

        for name, value in result.items():
            assert math.isfinite(value), name
            if name != "job_efficiency":
                assert value == 0.0, name
        assert result["job_efficiency"] == 95.0
