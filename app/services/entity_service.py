"""
app/services/entity_service.py

Unique-entity ("job") resolution over line-item rows.

A job spans many line items.  The set of distinct, trimmed job identifiers
that survive the department and date filters is the denominator of every
"percentage of jobs" KPI.  It is derived fresh from the rows on every call;
nothing here caches across filter combinations.

Per-job revenue is rolled up from a single grouping pass
(:class:`EntityIndex`) instead of re-scanning every row once per job.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from app.domain.date_range import DateRange
from app.domain.rows import LINE_ITEM_LAYOUT, Row, RowLayout
from app.services.row_inference import parse_amount, parse_row_date

logger = logging.getLogger(__name__)


def normalize_entity_id(value: Any) -> str | None:
    """Trimmed identifier, or ``None`` when blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def department_matches(row: Row, layout: RowLayout, department_filter: str | None) -> bool:
    """Case-insensitive exact match on the trimmed department; no filter matches all."""
    if department_filter is None:
        return True
    value = layout.get(row, "department")
    if value is None:
        return False
    return str(value).strip().lower() == department_filter.strip().lower()


def row_in_range(row: Row, layout: RowLayout, date_range: DateRange | None) -> bool:
    """True without a range; otherwise the row date must parse and fall inside it."""
    if date_range is None:
        return True
    row_date = parse_row_date(row, layout.date)
    return row_date is not None and date_range.contains(row_date)


@dataclass(frozen=True)
class EntityIndex:
    """
    Line items grouped by job after department and date filtering.

    Build with :meth:`build`; the mapping preserves first-seen order.
    """

    rows_by_entity: dict[str, list[Row]]
    layout: RowLayout

    @classmethod
    def build(
        cls,
        rows: Iterable[Row],
        *,
        date_range: DateRange | None,
        department_filter: str | None,
        layout: RowLayout = LINE_ITEM_LAYOUT,
    ) -> EntityIndex:
        grouped: dict[str, list[Row]] = {}
        for row in rows:
            entity_id = normalize_entity_id(layout.get(row, "entity"))
            if entity_id is None:
                continue
            if not department_matches(row, layout, department_filter):
                continue
            if not row_in_range(row, layout, date_range):
                continue
            grouped.setdefault(entity_id, []).append(row)
        logger.debug("EntityIndex built with %d unique entities", len(grouped))
        return cls(rows_by_entity=grouped, layout=layout)

    def __len__(self) -> int:
        return len(self.rows_by_entity)

    @property
    def entities(self) -> set[str]:
        return set(self.rows_by_entity)

    def revenue_by_entity(self) -> dict[str, float]:
        """Sum of the amount field across each job's filtered line items."""
        return {
            entity_id: sum(parse_amount(self.layout.get(row, "amount")) for row in items)
            for entity_id, items in self.rows_by_entity.items()
        }

    def line_items(self) -> list[Row]:
        """Every filtered line item, grouped by job."""
        return [row for items in self.rows_by_entity.values() for row in items]


def unique_entities(
    rows: Sequence[Row],
    date_range: DateRange | None,
    department_filter: str | None,
    layout: RowLayout = LINE_ITEM_LAYOUT,
) -> set[str]:
    """
    Distinct trimmed job identifiers among rows that pass both filters.

    Rows with a blank identifier are skipped.  When *date_range* is
    ``None`` no date filter applies.
    """
    return EntityIndex.build(
        rows,
        date_range=date_range,
        department_filter=department_filter,
        layout=layout,
    ).entities
