"""
app/services package marker.
"""

from app.services.date_range_service import TIME_FRAMES, resolve_date_range
from app.services.demo_data_service import generate_demo_kpis, generate_demo_time_series
from app.services.entity_service import EntityIndex, unique_entities
from app.services.row_inference import (
    classify_column,
    find_date_column,
    inspect_columns,
    parse_amount,
    parse_row_date,
)

__all__ = [
    "EntityIndex",
    "TIME_FRAMES",
    "classify_column",
    "find_date_column",
    "generate_demo_kpis",
    "generate_demo_time_series",
    "inspect_columns",
    "parse_amount",
    "parse_row_date",
    "resolve_date_range",
    "unique_entities",
]
