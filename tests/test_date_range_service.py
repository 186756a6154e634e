"""
tests/test_date_range_service.py

Pytest unit tests for the named-period date-range resolver.

All tests pin ``now`` so results are deterministic.
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from app.domain.date_range import DateRange, end_of_day, start_of_day
from app.services.date_range_service import TIME_FRAMES, days_in_range, resolve_date_range

# Wednesday
NOW = datetime(2024, 5, 15, 14, 30, 12)


def _day_bounds(value: date) -> tuple[datetime, datetime]:
    return start_of_day(value), end_of_day(value)


class TestDateRangeValueObject:
    def test_start_after_end_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            DateRange(datetime(2024, 1, 2), datetime(2024, 1, 1))

    def test_is_frozen(self) -> None:
        window = DateRange.for_days(date(2024, 1, 1), date(2024, 1, 31))
        with pytest.raises((AttributeError, TypeError)):
            window.start = datetime(2023, 1, 1)  # type: ignore[misc]

    def test_end_of_day_is_millisecond_precision(self) -> None:
        assert end_of_day(date(2024, 1, 1)) == datetime(2024, 1, 1, 23, 59, 59, 999000)

    def test_contains_is_inclusive_on_both_ends(self) -> None:
        window = DateRange.for_days(date(2024, 1, 1), date(2024, 1, 31))
        assert window.contains(date(2024, 1, 1))
        assert window.contains(date(2024, 1, 31))
        assert not window.contains(date(2024, 2, 1))
        assert not window.contains(datetime(2023, 12, 31, 23, 59, 59))


class TestResolveDateRange:
    def test_today(self) -> None:
        window = resolve_date_range("today", NOW)
        assert (window.start, window.end) == _day_bounds(date(2024, 5, 15))

    def test_yesterday(self) -> None:
        window = resolve_date_range("yesterday", NOW)
        assert (window.start, window.end) == _day_bounds(date(2024, 5, 14))

    def test_week_to_date_starts_monday(self) -> None:
        window = resolve_date_range("week", NOW)
        assert window.start == datetime(2024, 5, 13)
        assert window.end == end_of_day(date(2024, 5, 15))

    def test_week_complete_ends_sunday(self) -> None:
        window = resolve_date_range("week", NOW, week_mode="complete")
        assert window.start == datetime(2024, 5, 13)
        assert window.end == end_of_day(date(2024, 5, 19))

    def test_week_on_sunday_still_starts_previous_monday(self) -> None:
        window = resolve_date_range("week", datetime(2024, 5, 19, 9, 0))
        assert window.start == datetime(2024, 5, 13)

    def test_lastweek_is_complete_previous_week(self) -> None:
        window = resolve_date_range("lastweek", NOW)
        assert window.start == datetime(2024, 5, 6)
        assert window.end == end_of_day(date(2024, 5, 12))

    def test_month(self) -> None:
        window = resolve_date_range("month", NOW)
        assert window.start == datetime(2024, 5, 1)
        assert window.end == end_of_day(date(2024, 5, 15))

    def test_lastmonth_handles_leap_february(self) -> None:
        window = resolve_date_range("lastmonth", datetime(2024, 3, 10))
        assert window.start == datetime(2024, 2, 1)
        assert window.end == end_of_day(date(2024, 2, 29))

    def test_lastmonth_across_year_boundary(self) -> None:
        window = resolve_date_range("lastmonth", datetime(2024, 1, 5))
        assert window.start == datetime(2023, 12, 1)
        assert window.end == end_of_day(date(2023, 12, 31))

    def test_quarter_is_rolling_ninety_days(self) -> None:
        window = resolve_date_range("quarter", NOW)
        assert window.start == datetime(2024, 2, 15)
        assert window.end == end_of_day(date(2024, 5, 15))

    def test_year_is_rolling_365_days(self) -> None:
        window = resolve_date_range("year", NOW)
        assert window.start == datetime(2023, 5, 16)

    def test_currentyear_starts_january_first(self) -> None:
        window = resolve_date_range("currentyear", NOW)
        assert window.start == datetime(2024, 1, 1)
        assert window.end == end_of_day(date(2024, 5, 15))

    def test_custom_defaults_to_thirty_days(self) -> None:
        window = resolve_date_range("custom", NOW)
        assert window.start == datetime(2024, 4, 15)

    def test_custom_range_is_day_aligned(self) -> None:
        requested = DateRange(datetime(2024, 1, 3, 10, 0), datetime(2024, 1, 9, 8, 0))
        window = resolve_date_range("custom", NOW, custom_range=requested)
        assert (window.start, window.end) == (datetime(2024, 1, 3), end_of_day(date(2024, 1, 9)))

    def test_unknown_name_falls_back_to_today(self) -> None:
        assert resolve_date_range("fortnight", NOW) == resolve_date_range("today", NOW)

    def test_name_is_case_insensitive(self) -> None:
        assert resolve_date_range("  Month ", NOW) == resolve_date_range("month", NOW)

    @pytest.mark.parametrize("time_frame", TIME_FRAMES)
    def test_every_period_is_ordered_and_day_aligned(self, time_frame: str) -> None:
        window = resolve_date_range(time_frame, NOW)
        assert window.start <= window.end
        assert window.start == start_of_day(window.start)
        assert window.end == end_of_day(window.end)


class TestDaysInRange:
    def test_lists_every_calendar_day(self) -> None:
        window = DateRange.for_days(date(2024, 2, 27), date(2024, 3, 1))
        assert days_in_range(window) == [
            date(2024, 2, 27),
            date(2024, 2, 28),
            date(2024, 2, 29),
            date(2024, 3, 1),
        ]
