"""
app/services/row_inference.py

Heuristic date parsing, numeric coercion, and column type inference for
raw rows whose schema is not known in advance.

None of the functions here raise on bad input: an unparseable date reads
as ``None`` and an unparseable number reads as ``0.0``.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Final, Literal

from dateutil.parser import parse as dateutil_parse

from app.domain.rows import ColumnRef, Row, get_cell

logger = logging.getLogger(__name__)

ColumnType = Literal["date", "number", "text", "mixed", "empty"]

# Spreadsheet serial for 1970-01-01.
SERIAL_EPOCH_OFFSET: Final[int] = 25569
# Spreadsheet serial for 9999-12-31.
_MAX_SERIAL: Final[int] = 2958465
_UNIX_EPOCH: Final[datetime] = datetime(1970, 1, 1)

DATE_COLUMN_SAMPLE_SIZE: Final[int] = 5
TYPE_MAJORITY_THRESHOLD: Final[float] = 0.8

_SLASH_MDY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_YMD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DASH_MDY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_BARE_NUMBER = re.compile(r"^[+-]?\d+(\.\d+)?$")
_DATE_LIKE = re.compile(r"\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}|\d{4}-\d{2}-\d{2}")
_AMOUNT_NOISE = re.compile(r"[\s,$€£¥]")


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_date_value(value: Any) -> date | None:
    """
    Parse one cell into a calendar date.

    Tried in order: native date/datetime objects, spreadsheet serial
    numbers, ``M/D/YYYY``, ``YYYY-MM-DD``, ``M-D-YYYY``, then a generic
    parse.  Text that is only a number is never treated as a date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)):
        return _from_serial(float(value))

    text = str(value).strip()
    if not text:
        return None

    match = _SLASH_MDY.match(text) or _DASH_MDY.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _ISO_YMD.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    if _BARE_NUMBER.match(text):
        return None

    try:
        return dateutil_parse(text).date()
    except (ValueError, OverflowError, TypeError):
        return None


def parse_row_date(row: Row, column_index: ColumnRef = 0) -> date | None:
    """Parse the date held in *row* at *column_index*; ``None`` when unparseable."""
    return parse_date_value(get_cell(row, column_index))


def find_date_column(
    rows: Sequence[Row],
    max_columns_to_try: int = 3,
    sample_size: int = DATE_COLUMN_SAMPLE_SIZE,
) -> int | None:
    """
    Locate the first column that holds dates.

    Columns ``0 .. max_columns_to_try - 1`` are tried in order against the
    first *sample_size* data rows; the first column with at least one
    parseable date wins.  ``None`` means no candidate qualified.
    """
    sample = list(rows[:sample_size])
    for column_index in range(max_columns_to_try):
        if any(parse_row_date(row, column_index) is not None for row in sample):
            logger.debug("find_date_column selected column %d", column_index)
            return column_index
    return None


def _from_serial(serial: float) -> date | None:
    if not math.isfinite(serial) or serial <= 0 or serial > _MAX_SERIAL:
        return None
    return (_UNIX_EPOCH + timedelta(days=serial - SERIAL_EPOCH_OFFSET)).date()


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> float:
    """
    Coerce a monetary or numeric cell to ``float``.

    Currency symbols, thousands separators and whitespace are stripped.
    Anything still non-numeric (including NaN and infinities) reads as 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = _AMOUNT_NOISE.sub("", str(value))
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    try:
        number = float(text)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -number if negative else number


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Column classification
# ---------------------------------------------------------------------------


def classify_value(value: Any) -> ColumnType:
    """Classify one non-blank cell as ``date``, ``number`` or ``text``."""
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, bool):
        return "text"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    text = str(value).strip()
    if _DATE_LIKE.search(text) and parse_date_value(text) is not None:
        return "date"
    try:
        float(text)
    except ValueError:
        return "text"
    return "number"


def classify_column(values: Sequence[Any]) -> ColumnType:
    """
    Infer the type of a column from its sampled values.

    Blank cells are ignored.  A category holding at least 80 % of the
    remaining values names the column; otherwise it is ``mixed``.
    """
    present = [value for value in values if not is_blank(value)]
    if not present:
        return "empty"

    counts: dict[str, int] = {"date": 0, "number": 0, "text": 0}
    for value in present:
        counts[classify_value(value)] += 1

    total = len(present)
    for column_type in ("date", "number", "text"):
        if counts[column_type] / total >= TYPE_MAJORITY_THRESHOLD:
            return column_type  # type: ignore[return-value]
    return "mixed"


@dataclass(frozen=True)
class ColumnProfile:
    """Summary of one column for data inspection."""

    index: int
    name: str
    data_type: ColumnType
    sample_values: list[Any] = field(default_factory=list)
    valid_count: int = 0
    empty_count: int = 0


def inspect_columns(header: Sequence[Any], rows: Sequence[Sequence[Any]]) -> list[ColumnProfile]:
    """
    Profile every column of a positional grid.

    The column count is the widest of the header and the data rows;
    columns without a header name are labelled ``Column N`` (1-based).
    """
    width = max([len(header), *(len(row) for row in rows)], default=0)
    profiles: list[ColumnProfile] = []
    for index in range(width):
        values = [row[index] if index < len(row) else None for row in rows]
        present = [value for value in values if not is_blank(value)]
        name = header[index] if index < len(header) and not is_blank(header[index]) else None
        profiles.append(
            ColumnProfile(
                index=index,
                name=str(name).strip() if name is not None else f"Column {index + 1}",
                data_type=classify_column(values),
                sample_values=present[:5],
                valid_count=len(present),
                empty_count=len(values) - len(present),
            )
        )
    return profiles
