"""
tests/test_row_inference.py

Pytest unit tests for date parsing, amount coercion and column inference.
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from app.services.row_inference import (
    classify_column,
    find_date_column,
    inspect_columns,
    parse_amount,
    parse_date_value,
    parse_row_date,
)


class TestParseDateValue:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1/5/2024", date(2024, 1, 5)),
            ("12/31/2023", date(2023, 12, 31)),
            ("2024-01-05", date(2024, 1, 5)),
            ("1-5-2024", date(2024, 1, 5)),
            ("January 5, 2024", date(2024, 1, 5)),
            (datetime(2024, 1, 5, 13, 0), date(2024, 1, 5)),
            (date(2024, 1, 5), date(2024, 1, 5)),
        ],
    )
    def test_supported_formats(self, value: object, expected: date) -> None:
        assert parse_date_value(value) == expected

    def test_spreadsheet_serial_number(self) -> None:
        assert parse_date_value(25569) == date(1970, 1, 1)
        assert parse_date_value(45296) == date(2024, 1, 5)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", "12345", "13/45/2024", True, 0, -3])
    def test_unparseable_values_read_as_none(self, value: object) -> None:
        assert parse_date_value(value) is None

    def test_parse_row_date_reads_the_requested_column(self) -> None:
        row = ["Install", "2024-03-02", 100]
        assert parse_row_date(row, 1) == date(2024, 3, 2)
        assert parse_row_date(row, 0) is None
        assert parse_row_date(row, 9) is None

    def test_parse_row_date_on_mapping_rows(self) -> None:
        row = {"Invoice Date": "2024-03-02", "Job": "J1"}
        assert parse_row_date(row, "Invoice Date") == date(2024, 3, 2)
        assert parse_row_date(row, "Missing") is None


class TestFindDateColumn:
    def test_first_column_wins_when_it_holds_dates(self) -> None:
        rows = [["1/1/2024", "x"], ["1/2/2024", "y"]]
        assert find_date_column(rows) == 0

    def test_later_column_is_found(self) -> None:
        rows = [["J1", "Drain", "2024-01-01"], ["J2", "Drain", "2024-01-02"]]
        assert find_date_column(rows) == 2

    def test_only_leading_columns_are_tried(self) -> None:
        rows = [["alpha", "beta", "gamma", "2024-01-01"]]
        assert find_date_column(rows) is None
        assert find_date_column(rows, max_columns_to_try=4) == 3

    def test_only_sampled_rows_are_considered(self) -> None:
        rows = [["x"]] * 5 + [["2024-01-01"]]
        assert find_date_column(rows) is None

    def test_no_rows(self) -> None:
        assert find_date_column([]) is None


class TestParseAmount:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("$12,000", 12000.0),
            (" 1,234.50 ", 1234.5),
            ("€99", 99.0),
            ("(250)", -250.0),
            (42, 42.0),
            (3.5, 3.5),
        ],
    )
    def test_numeric_values(self, value: object, expected: float) -> None:
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [None, "", "n/a", "abc", float("nan"), float("inf"), "inf", True])
    def test_non_numeric_values_read_as_zero(self, value: object) -> None:
        assert parse_amount(value) == 0.0


class TestClassifyColumn:
    def test_dates(self) -> None:
        assert classify_column(["1/1/2024", "1/2/2024", "2024-01-03", "", None]) == "date"

    def test_numbers(self) -> None:
        assert classify_column(["1", "2.5", 3, "4", "x"]) == "number"

    def test_text(self) -> None:
        assert classify_column(["Install", "Jetting", "Drain"]) == "text"

    def test_mixed_below_threshold(self) -> None:
        assert classify_column(["1", "2", "a", "b"]) == "mixed"

    def test_exactly_eighty_percent_qualifies(self) -> None:
        assert classify_column(["1", "2", "3", "4", "a"]) == "number"

    def test_all_blank(self) -> None:
        assert classify_column(["", None, "  "]) == "empty"


class TestInspectColumns:
    def test_profiles_every_column(self) -> None:
        header = ["Date", "Revenue"]
        rows = [["1/1/2024", "100", "extra"], ["1/2/2024", "", None]]
        profiles = inspect_columns(header, rows)

        assert [profile.name for profile in profiles] == ["Date", "Revenue", "Column 3"]
        assert profiles[0].data_type == "date"
        assert profiles[1].data_type == "number"
        assert profiles[1].valid_count == 1
        assert profiles[1].empty_count == 1
        assert profiles[2].sample_values == ["extra"]
