"""
app/connectors/sheets_connector.py

Spreadsheet connector: reads a cell range through the Google Sheets
values API and returns it as a positional grid.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from app.config import ExternalHTTPSettings
from app.connectors.base import BaseConnector, ConnectorRequestError, FetchedRows, SourceErrorKind
from app.domain.date_range import DateRange
from app.errors import ConfigurationError

logger = logging.getLogger(__name__)

SHEETS_API_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_ADDRESS = "A:Z"


class SheetsConnector(BaseConnector):
    """
    Connector for spreadsheet sources addressed by id, API key and range.

    The whole range is returned; date filtering happens in the aggregator
    because the sheet API has no row-level query.
    """

    def __init__(
        self,
        *,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
        base_url: str = SHEETS_API_BASE_URL,
    ) -> None:
        super().__init__(source="spreadsheet", http_settings=http_settings, session=session)
        self._base_url = base_url.rstrip("/")

    def fetch_rows(
        self,
        *,
        spreadsheet_id: str | None,
        api_key: str | None,
        address: str = DEFAULT_ADDRESS,
    ) -> list[list[Any]]:
        """
        Return the value grid of *address*, first row being the header.

        Raises
        ------
        ConfigurationError
            When the spreadsheet id or API key is missing.
        ConnectorRequestError
            On HTTP failure or an unexpected payload shape.
        """

        if not spreadsheet_id:
            raise ConfigurationError("Spreadsheet source has no spreadsheet id configured.")
        if not api_key:
            raise ConfigurationError(
                f"Spreadsheet {spreadsheet_id!r} has no API key and no global key is configured."
            )

        url = (
            f"{self._base_url}/{quote(spreadsheet_id, safe='')}"
            f"/values/{quote(address or DEFAULT_ADDRESS, safe='')}"
        )
        payload = self._request_json(
            method="GET",
            url=url,
            params={
                "key": api_key,
                "valueRenderOption": "UNFORMATTED_VALUE",
                "dateTimeRenderOption": "FORMATTED_STRING",
            },
        )

        if not isinstance(payload, dict):
            logger.error("Unexpected spreadsheet payload shape for %s.", spreadsheet_id)
            raise ConnectorRequestError(
                f"{self.source}: payload for {spreadsheet_id!r} is not an object.",
                kind=SourceErrorKind.MALFORMED_RESPONSE,
            )

        values = payload.get("values", [])
        if not isinstance(values, list) or any(not isinstance(row, list) for row in values):
            logger.error("Spreadsheet %s returned a non-grid 'values' field.", spreadsheet_id)
            raise ConnectorRequestError(
                f"{self.source}: 'values' for {spreadsheet_id!r} is not a grid.",
                kind=SourceErrorKind.MALFORMED_RESPONSE,
            )

        logger.debug("Spreadsheet %s range %s returned %d rows", spreadsheet_id, address, len(values))
        return values

    def fetch(
        self,
        source: Any,
        date_range: DateRange,
        *,
        credential: str | None = None,
    ) -> FetchedRows:
        grid = self.fetch_rows(
            spreadsheet_id=source.id,
            api_key=credential,
            address=source.address,
        )
        if not grid:
            return FetchedRows(source_id=source.id, rows=[], header=[])
        return FetchedRows(source_id=source.id, rows=grid[1:], header=list(grid[0]))
