"""
app/logging_utils.py

One-line JSON events for fetch and aggregation steps.

Fields may carry engine values directly: status enums are logged by
value, a ``DateRange`` becomes its ``start``/``end`` pair and dates use
ISO format.  Fields left as ``None`` are omitted from the line.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

from app.domain.date_range import DateRange


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, DateRange):
        return {"start": value.start.isoformat(), "end": value.end.isoformat()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def event_payload(event: str, **fields: Any) -> dict[str, Any]:
    """The dict logged for *event*, without empty fields."""
    payload: dict[str, Any] = {"event": event}
    payload.update((name, value) for name, value in fields.items() if value is not None)
    return payload


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """Emit *event* with *fields* as one sorted JSON line."""
    if not logger.isEnabledFor(level):
        return
    line = json.dumps(event_payload(event, **fields), default=_jsonable, sort_keys=True)
    logger.log(level, line)
