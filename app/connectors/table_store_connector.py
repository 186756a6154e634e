"""
app/connectors/table_store_connector.py

Table-store connector: reads field-keyed records from a relational table
through SQLAlchemy.

The date window is pushed down into the query when the date column is a
native date type or text holding ISO dates.  When the windowed query comes
back empty a bounded, unfiltered fallback query tells "no rows in this
period" apart from "table empty or misconfigured".  Text columns holding
any other date format are scanned unfiltered (bounded by
``scan_row_limit``) and left to row-level date parsing.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy import Column, Date, DateTime, MetaData, String, Table, Text, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError, OperationalError, SQLAlchemyError

from app.config import ExternalHTTPSettings
from app.connectors.base import BaseConnector, ConnectorRequestError, FetchedRows, SourceErrorKind
from app.domain.date_range import DateRange
from app.errors import ConfigurationError
from db.session import get_engine

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_ROW_LIMIT = 100
DEFAULT_SCAN_ROW_LIMIT = 5000
DATE_SAMPLE_SIZE = 5

_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

EngineFactory = Callable[[str | None], Engine]


class TableStoreConnector(BaseConnector):
    """
    Connector for table sources; one instance serves every table source.
    """

    def __init__(
        self,
        *,
        http_settings: ExternalHTTPSettings,
        fallback_row_limit: int = DEFAULT_FALLBACK_ROW_LIMIT,
        scan_row_limit: int = DEFAULT_SCAN_ROW_LIMIT,
        engine_factory: EngineFactory = get_engine,
    ) -> None:
        super().__init__(source="table_store", http_settings=http_settings)
        self._fallback_row_limit = fallback_row_limit
        self._scan_row_limit = scan_row_limit
        self._engine_factory = engine_factory

    def fetch(
        self,
        source: Any,
        date_range: DateRange,
        *,
        credential: str | None = None,
    ) -> FetchedRows:
        if not source.table_name:
            raise ConfigurationError(f"Table source {source.id!r} has no table name configured.")
        return self.fetch_rows(
            table_name=source.table_name,
            date_column=source.effective_date_column,
            date_range=date_range,
            database_url=source.database_url,
            source_id=source.id,
        )

    def fetch_rows(
        self,
        *,
        table_name: str,
        date_column: str | None,
        date_range: DateRange | None,
        database_url: str | None = None,
        source_id: str | None = None,
    ) -> FetchedRows:
        """
        Fetch the rows of *table_name* whose *date_column* falls in *date_range*.

        Returns in-window rows with ``prefiltered=True``.  An empty window
        over a non-empty table returns no rows and the fallback row count;
        without a date column or range the first ``fallback_row_limit`` rows
        are returned unfiltered.  A text date column in a non-ISO format
        returns up to ``scan_row_limit`` rows unfiltered.

        Raises
        ------
        ConnectorRequestError
            ``not_found`` for a missing table or date column,
            ``malformed_response`` for an empty table,
            ``network_unreachable`` once connection retries are exhausted.
        """

        engine = self._engine_factory(database_url)
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                with engine.connect() as connection:
                    return self._query(
                        connection,
                        table_name=table_name,
                        date_column=date_column,
                        date_range=date_range,
                        source_id=source_id or table_name,
                    )
            except NoSuchTableError as exc:
                logger.error("Table %r does not exist in the configured store.", table_name)
                raise ConnectorRequestError(
                    f"{self.source}: table {table_name!r} not found.",
                    kind=SourceErrorKind.NOT_FOUND,
                ) from exc
            except OperationalError as exc:
                last_error = exc
            except SQLAlchemyError as exc:
                logger.error("Table query failed table=%s error=%s", table_name, exc)
                raise ConnectorRequestError(
                    f"{self.source}: query against {table_name!r} failed.",
                    kind=SourceErrorKind.BAD_REQUEST,
                ) from exc

            if attempt >= self._max_retries:
                break
            self._backoff(attempt, table_name, last_error)

        logger.error(
            "Table query exhausted retries source=%s table=%s error=%s",
            self.source,
            table_name,
            last_error,
        )
        raise ConnectorRequestError(
            f"{self.source}: table store unreachable after retries.",
            kind=SourceErrorKind.NETWORK_UNREACHABLE,
        ) from last_error

    def _query(
        self,
        connection: Connection,
        *,
        table_name: str,
        date_column: str | None,
        date_range: DateRange | None,
        source_id: str,
    ) -> FetchedRows:
        table = Table(table_name, MetaData(), autoload_with=connection)
        column = None
        if date_column:
            if date_column not in table.c:
                raise ConnectorRequestError(
                    f"{self.source}: column {date_column!r} not found in {table_name!r}.",
                    kind=SourceErrorKind.NOT_FOUND,
                )
            column = table.c[date_column]

        if column is not None and date_range is not None:
            if not _window_pushable(connection, column):
                return self._scan(connection, table, source_id=source_id)
            windowed = select(table).where(*_window_clauses(column, date_range)).order_by(column)
            rows = [dict(record._mapping) for record in connection.execute(windowed)]
            if rows:
                logger.debug("Table %s returned %d rows in window", table_name, len(rows))
                return FetchedRows(source_id=source_id, rows=rows, prefiltered=True)

        fallback = select(table).limit(self._fallback_row_limit)
        if column is not None:
            fallback = fallback.order_by(column.desc())
        fallback_rows = [dict(record._mapping) for record in connection.execute(fallback)]
        if not fallback_rows:
            raise ConnectorRequestError(
                f"{self.source}: table {table_name!r} returned no rows at all.",
                kind=SourceErrorKind.MALFORMED_RESPONSE,
            )

        if column is not None and date_range is not None:
            logger.info(
                "Table %s has no rows between %s and %s (%d rows outside the window)",
                table_name,
                date_range.start.date(),
                date_range.end.date(),
                len(fallback_rows),
            )
            return FetchedRows(
                source_id=source_id,
                rows=[],
                prefiltered=True,
                fallback_row_count=len(fallback_rows),
            )
        return FetchedRows(source_id=source_id, rows=fallback_rows)

    def _scan(self, connection: Connection, table: Table, *, source_id: str) -> FetchedRows:
        rows = [
            dict(record._mapping)
            for record in connection.execute(select(table).limit(self._scan_row_limit))
        ]
        if not rows:
            raise ConnectorRequestError(
                f"{self.source}: table {table.name!r} returned no rows at all.",
                kind=SourceErrorKind.MALFORMED_RESPONSE,
            )
        logger.info(
            "Table %s stores dates as free-form text; scanned %d rows for row-level filtering",
            table.name,
            len(rows),
        )
        return FetchedRows(source_id=source_id, rows=rows)


def _window_pushable(connection: Connection, column: Column) -> bool:
    """
    Whether the date window can be expressed in SQL against *column*.

    Text columns qualify only when every sampled value starts with an ISO
    date, because only then does lexical order match date order.
    """
    if not isinstance(column.type, (String, Text)):
        return True
    sample = connection.execute(
        select(column).where(column.is_not(None)).limit(DATE_SAMPLE_SIZE)
    ).scalars()
    return all(_ISO_DATE_PREFIX.match(str(value).strip()) for value in sample)


def _window_clauses(column: Column, date_range: DateRange) -> tuple[Any, Any]:
    """
    Inclusive window bounds in the column's own representation.

    Text columns hold ISO dates, compared lexically against the first day
    and the day after the last one.
    """

    column_type = column.type
    if isinstance(column_type, (String, Text)):
        first = date_range.start.date().isoformat()
        after_last = (date_range.end.date() + timedelta(days=1)).isoformat()
        return column >= first, column < after_last
    if isinstance(column_type, DateTime):
        return column >= date_range.start, column <= date_range.end
    if isinstance(column_type, Date):
        return column >= date_range.start.date(), column <= date_range.end.date()
    return column >= date_range.start, column <= date_range.end
