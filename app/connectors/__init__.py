"""
app/connectors package marker.
"""

from app.connectors.base import (
    BaseConnector,
    ConnectorRequestError,
    FetchedRows,
    SourceErrorKind,
)
from app.connectors.sheets_connector import SheetsConnector
from app.connectors.table_store_connector import TableStoreConnector

__all__ = [
    "BaseConnector",
    "ConnectorRequestError",
    "FetchedRows",
    "SheetsConnector",
    "SourceErrorKind",
    "TableStoreConnector",
]
