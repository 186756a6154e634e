"""
kpi/rules.py

Injectable row-classification rules.

Service lines (jetting, descaling), memberships, callbacks and complaints
are recognised by keyword matching on free text.  Each concern is a rule
object with ``matches(row, layout) -> bool``; any object with that method
can replace a default rule without touching the calculators.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.domain.rows import Row, RowLayout, row_values


class RowRule(Protocol):
    def matches(self, row: Row, layout: RowLayout) -> bool: ...


def _contains_keyword(value: Any, keywords: Sequence[str]) -> bool:
    if value is None:
        return False
    text = str(value).lower()
    return any(keyword in text for keyword in keywords)


@dataclass(frozen=True)
class KeywordRule:
    """
    Case-insensitive substring match over one or more cells.

    ``scope`` selects the cells scanned:

    * ``"description"`` – the line-item description column
    * ``"any_field"``   – every cell of the row
    * a multi-column layout role such as ``"callback_columns"``
    """

    keywords: tuple[str, ...]
    scope: str = "description"

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "keywords",
            tuple(keyword.strip().lower() for keyword in self.keywords if keyword.strip()),
        )

    def _cells(self, row: Row, layout: RowLayout) -> Iterable[Any]:
        if self.scope == "any_field":
            return row_values(row)
        if self.scope == "description":
            return (layout.get(row, "description"),)
        return layout.get_many(row, self.scope)

    def matches(self, row: Row, layout: RowLayout) -> bool:
        if not self.keywords:
            return False
        return any(_contains_keyword(cell, self.keywords) for cell in self._cells(row, layout))


@dataclass(frozen=True)
class ClassificationRules:
    """The rule set consulted by the KPI formulas."""

    jetting: RowRule = field(default_factory=lambda: KeywordRule(("jet",)))
    descaling: RowRule = field(default_factory=lambda: KeywordRule(("desc",)))
    membership: RowRule = field(
        default_factory=lambda: KeywordRule(("member", "membership", "plan"), scope="any_field")
    )
    callback: RowRule = field(
        default_factory=lambda: KeywordRule(("callback", "return", "yes"), scope="callback_columns")
    )
    complaint: RowRule = field(
        default_factory=lambda: KeywordRule(("complaint", "issue", "yes"), scope="complaint_columns")
    )

    @classmethod
    def from_keywords(
        cls,
        *,
        jetting: Sequence[str],
        descaling: Sequence[str],
        membership: Sequence[str],
        callback: Sequence[str],
        complaint: Sequence[str],
    ) -> ClassificationRules:
        return cls(
            jetting=KeywordRule(tuple(jetting)),
            descaling=KeywordRule(tuple(descaling)),
            membership=KeywordRule(tuple(membership), scope="any_field"),
            callback=KeywordRule(tuple(callback), scope="callback_columns"),
            complaint=KeywordRule(tuple(complaint), scope="complaint_columns"),
        )
