"""
app/domain/date_range.py

Inclusive date window used by every aggregation call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time


def start_of_day(value: datetime | date) -> datetime:
    """00:00:00.000 on the calendar day of *value* (tzinfo preserved)."""
    if isinstance(value, datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime.combine(value, time.min)


def end_of_day(value: datetime | date) -> datetime:
    """23:59:59.999 on the calendar day of *value* (tzinfo preserved)."""
    if isinstance(value, datetime):
        return value.replace(hour=23, minute=59, second=59, microsecond=999000)
    return datetime.combine(value, time(23, 59, 59, 999000))


@dataclass(frozen=True)
class DateRange:
    """
    Immutable ``[start, end]`` window, inclusive on both ends.

    Instants are naive local datetimes unless the caller supplies
    timezone-aware ones; both ends always share the same awareness.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"DateRange start must not be after end; "
                f"got {self.start.isoformat()} > {self.end.isoformat()}"
            )

    @classmethod
    def for_days(cls, first: date, last: date) -> DateRange:
        """Whole-day range from the start of *first* to the end of *last*."""
        return cls(start=start_of_day(first), end=end_of_day(last))

    def contains(self, value: datetime | date) -> bool:
        """
        True when *value* falls inside the window.

        Plain dates are compared as midnight of that day, so a row dated
        on the last day of a day-aligned window is included.
        """
        if not isinstance(value, datetime):
            value = datetime.combine(value, time.min)
        start, end = self.start, self.end
        if value.tzinfo is None and start.tzinfo is not None:
            start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
        elif value.tzinfo is not None and start.tzinfo is None:
            value = value.replace(tzinfo=None)
        return start <= value <= end
