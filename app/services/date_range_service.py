"""
app/services/date_range_service.py

Maps a named dashboard period onto a concrete inclusive date window.

Periods
-------
today        start of today .. end of today
yesterday    today shifted back one day
week         Monday of the current week .. end of today   (week_mode="to_date")
             Monday .. Sunday of the current week        (week_mode="complete")
lastweek     the complete Monday-Sunday week before the current one
month        1st of the current month .. end of today
lastmonth    the complete previous calendar month
quarter      rolling 90 days ending today (not a calendar quarter)
year         rolling 365 days ending today (not a calendar year)
currentyear  January 1st .. end of today
custom       caller-supplied bounds, else a rolling 30 days

Unknown names resolve to ``today``.  Every window ends on a day boundary;
the rolling windows end at the close of the current day rather than at the
current instant so that rows dated today are always included.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Final, Literal

from app.domain.date_range import DateRange, end_of_day, start_of_day

logger = logging.getLogger(__name__)

WeekMode = Literal["to_date", "complete"]

QUARTER_DAYS: Final[int] = 90
YEAR_DAYS: Final[int] = 365
CUSTOM_DEFAULT_DAYS: Final[int] = 30

TIME_FRAMES: Final[tuple[str, ...]] = (
    "today",
    "yesterday",
    "week",
    "lastweek",
    "month",
    "lastmonth",
    "quarter",
    "year",
    "currentyear",
    "custom",
)


def resolve_date_range(
    time_frame: str,
    now: datetime | None = None,
    *,
    week_mode: WeekMode = "to_date",
    custom_range: DateRange | None = None,
) -> DateRange:
    """
    Resolve *time_frame* relative to *now* (defaults to the local clock).

    Pure function: no I/O, no global state.  ``custom_range`` only applies
    to the ``custom`` period and overrides its 30-day default.
    """
    now = now or datetime.now()
    today = start_of_day(now)
    name = (time_frame or "").strip().lower()

    if name == "today":
        return DateRange(today, end_of_day(today))

    if name == "yesterday":
        yesterday = today - timedelta(days=1)
        return DateRange(yesterday, end_of_day(yesterday))

    if name == "week":
        monday = today - timedelta(days=today.weekday())
        if week_mode == "complete":
            return DateRange(monday, end_of_day(monday + timedelta(days=6)))
        return DateRange(monday, end_of_day(today))

    if name == "lastweek":
        last_monday = today - timedelta(days=today.weekday() + 7)
        return DateRange(last_monday, end_of_day(last_monday + timedelta(days=6)))

    if name == "month":
        return DateRange(today.replace(day=1), end_of_day(today))

    if name == "lastmonth":
        first_of_month = today.replace(day=1)
        last_month_end = first_of_month - timedelta(days=1)
        return DateRange(last_month_end.replace(day=1), end_of_day(last_month_end))

    if name == "quarter":
        return _rolling(today, QUARTER_DAYS)

    if name == "year":
        return _rolling(today, YEAR_DAYS)

    if name == "currentyear":
        return DateRange(today.replace(month=1, day=1), end_of_day(today))

    if name == "custom":
        if custom_range is not None:
            return DateRange(start_of_day(custom_range.start), end_of_day(custom_range.end))
        return _rolling(today, CUSTOM_DEFAULT_DAYS)

    logger.debug("Unknown time frame %r, falling back to today", time_frame)
    return DateRange(today, end_of_day(today))


def _rolling(today: datetime, days: int) -> DateRange:
    return DateRange(today - timedelta(days=days), end_of_day(today))


def days_in_range(date_range: DateRange) -> list[date]:
    """Every calendar day touched by *date_range*, ascending."""
    first = date_range.start.date()
    last = date_range.end.date()
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]
