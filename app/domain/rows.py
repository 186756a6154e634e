"""
app/domain/rows.py

Raw row addressing.

Rows arrive either as positional lists (spreadsheet grids) or as
field-keyed mappings (table-store records).  A :class:`RowLayout` names the
semantic role of each column so the calculators never hardcode a position
or a header.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields, replace
from typing import Any, Union

Row = Union[Sequence[Any], Mapping[str, Any]]
ColumnRef = Union[int, str, None]

_SCALAR_ROLES = (
    "date",
    "department",
    "description",
    "amount",
    "entity",
    "customer",
    "estimated_hours",
    "actual_hours",
    "duration_hours",
    "tech_pay",
    "review",
    "value",
    "metric",
)
_MULTI_ROLES = ("callback_columns", "complaint_columns")


def get_cell(row: Row, ref: ColumnRef) -> Any:
    """
    Read one cell by positional index or header name.

    Out-of-range indexes, unknown names, and names used against a
    positional row all read as ``None``.
    """
    if ref is None:
        return None
    if isinstance(row, Mapping):
        if isinstance(ref, str):
            return row.get(ref)
        values = list(row.values())
        return values[ref] if 0 <= ref < len(values) else None
    if isinstance(ref, str):
        return None
    return row[ref] if 0 <= ref < len(row) else None


def row_values(row: Row) -> list[Any]:
    """Every cell of *row* in column order."""
    if isinstance(row, Mapping):
        return list(row.values())
    return list(row)


@dataclass(frozen=True)
class RowLayout:
    """
    Semantic-role to column mapping for one source's rows.

    Scalar roles hold a single column reference; ``callback_columns`` and
    ``complaint_columns`` hold the column range scanned for keywords.
    """

    date: ColumnRef = None
    department: ColumnRef = None
    description: ColumnRef = None
    amount: ColumnRef = None
    entity: ColumnRef = None
    customer: ColumnRef = None
    estimated_hours: ColumnRef = None
    actual_hours: ColumnRef = None
    duration_hours: ColumnRef = None
    tech_pay: ColumnRef = None
    review: ColumnRef = None
    value: ColumnRef = None
    metric: ColumnRef = None
    callback_columns: tuple[ColumnRef, ...] = ()
    complaint_columns: tuple[ColumnRef, ...] = ()

    def get(self, row: Row, role: str) -> Any:
        return get_cell(row, getattr(self, role))

    def get_many(self, row: Row, role: str) -> list[Any]:
        return [get_cell(row, ref) for ref in getattr(self, role)]

    def has(self, role: str) -> bool:
        ref = getattr(self, role)
        if role in _MULTI_ROLES:
            return bool(ref)
        return ref is not None

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> RowLayout:
        """Return a copy with the given roles replaced; unknown roles raise."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for role, ref in overrides.items():
            if role not in known:
                raise ValueError(f"Unknown row layout role {role!r}.")
            changes[role] = tuple(ref) if role in _MULTI_ROLES else ref
        return replace(self, **changes)

    def resolve(self, header: Sequence[Any] | None) -> RowLayout:
        """
        Translate header-name references into positional indexes.

        Matching is case-insensitive on trimmed names.  Names missing
        from the header become ``None`` so the role reads as absent.
        Without a header the layout is returned unchanged.
        """
        if not header:
            return self
        positions = {
            str(name).strip().lower(): index
            for index, name in enumerate(header)
            if name is not None and str(name).strip()
        }

        def _lookup(ref: ColumnRef) -> ColumnRef:
            if isinstance(ref, str):
                return positions.get(ref.strip().lower())
            return ref

        changes: dict[str, Any] = {role: _lookup(getattr(self, role)) for role in _SCALAR_ROLES}
        for role in _MULTI_ROLES:
            resolved = tuple(_lookup(ref) for ref in getattr(self, role))
            changes[role] = tuple(ref for ref in resolved if ref is not None)
        return replace(self, **changes)


# Spreadsheet export of service calls:
#   Date | Service Type | Revenue | Duration | Tech Pay | Customer Rating | Callback | Complaint
# The sheet has no department column, so it is never department-filtered.
SERVICE_CALL_LAYOUT = RowLayout(
    date=0,
    description=1,
    amount=2,
    duration_hours=3,
    tech_pay=4,
    review=5,
    callback_columns=(6,),
    complaint_columns=(7,),
)

# Sold line items table: one row per billed item, many items per job.
LINE_ITEM_LAYOUT = RowLayout(
    date="Invoice Date",
    department="Department",
    description="Line Item",
    amount="Price",
    entity="Job",
    customer="Customer ID",
)

# Pre-aggregated trend rows: Date | Value | Metric
TIME_SERIES_LAYOUT = RowLayout(date=0, value=1, metric=2)

# The same trend rows stored as a table, addressed by column name.
TIME_SERIES_TABLE_LAYOUT = RowLayout(date="Date", value="Value", metric="Metric")
