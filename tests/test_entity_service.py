"""
tests/test_entity_service.py

Pytest unit tests for unique-entity resolution.
"""

from __future__ import annotations

import random
from datetime import date

import pytest

from app.domain.date_range import DateRange
from app.services.entity_service import EntityIndex, department_matches, unique_entities
from app.domain.rows import LINE_ITEM_LAYOUT

JANUARY = DateRange.for_days(date(2024, 1, 1), date(2024, 1, 31))


def _item(job: str, department: str, amount: str, invoice_date: str, line_item: str = "Labor") -> dict:
    return {
        "Job": job,
        "Department": department,
        "Line Item": line_item,
        "Price": amount,
        "Invoice Date": invoice_date,
    }


@pytest.fixture()
def rows() -> list[dict]:
    return [
        _item("J1", "Drain Cleaning", "$100", "2024-01-05"),
        _item(" J1 ", "drain cleaning", "$50", "2024-01-06"),
        _item("J2", "Drain Cleaning", "$75", "2024-01-10"),
        _item("J3", "Plumbing", "$500", "2024-01-10"),
        _item("J4", "Drain Cleaning", "$20", "2024-02-10"),
        _item("  ", "Drain Cleaning", "$20", "2024-01-10"),
        _item("J5", "Drain Cleaning", "$20", "not a date"),
    ]


class TestUniqueEntities:
    def test_filters_by_department_and_date(self, rows: list[dict]) -> None:
        assert unique_entities(rows, JANUARY, "Drain Cleaning") == {"J1", "J2"}

    def test_no_date_range_disables_date_filter(self, rows: list[dict]) -> None:
        assert unique_entities(rows, None, "Drain Cleaning") == {"J1", "J2", "J4", "J5"}

    def test_no_department_filter_matches_all(self, rows: list[dict]) -> None:
        assert unique_entities(rows, JANUARY, None) == {"J1", "J2", "J3"}

    def test_invariant_under_reordering_and_duplicates(self, rows: list[dict]) -> None:
        shuffled = rows + rows
        random.Random(7).shuffle(shuffled)
        assert unique_entities(shuffled, JANUARY, "Drain Cleaning") == unique_entities(
            rows, JANUARY, "Drain Cleaning"
        )

    def test_empty_rows(self) -> None:
        assert unique_entities([], JANUARY, "Drain Cleaning") == set()


class TestDepartmentMatches:
    def test_case_insensitive_trimmed_exact_match(self) -> None:
        row = {"Department": "  DRAIN cleaning "}
        assert department_matches(row, LINE_ITEM_LAYOUT, "Drain Cleaning")
        assert not department_matches(row, LINE_ITEM_LAYOUT, "Drain")

    def test_missing_department_never_matches_a_filter(self) -> None:
        assert not department_matches({}, LINE_ITEM_LAYOUT, "Drain Cleaning")
        assert department_matches({}, LINE_ITEM_LAYOUT, None)


class TestEntityIndex:
    def test_revenue_rollup_per_job(self, rows: list[dict]) -> None:
        index = EntityIndex.build(rows, date_range=JANUARY, department_filter="Drain Cleaning")
        assert len(index) == 2
        assert index.revenue_by_entity() == {"J1": 150.0, "J2": 75.0}
        assert len(index.line_items()) == 3
