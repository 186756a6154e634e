"""
app/connectors/base.py

Base connector abstraction and shared retry mechanics.
"""

from __future__ import annotations

import enum
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import requests

from app.config import ExternalHTTPSettings
from app.domain.date_range import DateRange
from app.domain.rows import Row
from app.errors import (
    SOURCE_MALFORMED,
    SOURCE_REJECTED,
    SOURCE_UNREACHABLE,
    SourceError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class SourceErrorKind(str, enum.Enum):
    """Connector-level failure kinds, each mapped onto the engine taxonomy."""

    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    NETWORK_UNREACHABLE = "network_unreachable"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def taxonomy_kind(self) -> str:
        return _TAXONOMY[self]


_TAXONOMY: dict[SourceErrorKind, str] = {
    SourceErrorKind.ACCESS_DENIED: SOURCE_REJECTED,
    SourceErrorKind.NOT_FOUND: SOURCE_REJECTED,
    SourceErrorKind.BAD_REQUEST: SOURCE_REJECTED,
    SourceErrorKind.NETWORK_UNREACHABLE: SOURCE_UNREACHABLE,
    SourceErrorKind.MALFORMED_RESPONSE: SOURCE_MALFORMED,
}


def kind_for_status(status_code: int | None) -> SourceErrorKind:
    """Classify a final (non-retried or exhausted) HTTP status."""
    if status_code in (401, 403):
        return SourceErrorKind.ACCESS_DENIED
    if status_code == 404:
        return SourceErrorKind.NOT_FOUND
    if status_code is None or status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return SourceErrorKind.NETWORK_UNREACHABLE
    return SourceErrorKind.BAD_REQUEST


class ConnectorRequestError(SourceError):
    """
    Raised when a connector cannot fetch data after retries.

    ``error_kind`` tells the caller which remediation applies; ``kind`` is
    the matching engine-wide taxonomy value.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: SourceErrorKind,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_kind = kind
        self.kind = kind.taxonomy_kind
        self.status_code = status_code


@dataclass(frozen=True)
class FetchedRows:
    """
    Raw rows returned by one source fetch.

    ``header`` is the first grid row for positional sources.  ``prefiltered``
    is ``True`` when the store already restricted rows to the requested
    window; ``fallback_row_count`` counts rows seen by the unfiltered
    fallback query when the window itself was empty.
    """

    source_id: str
    rows: list[Row] = field(default_factory=list)
    header: list[Any] | None = None
    prefiltered: bool = False
    fallback_row_count: int = 0


class BaseConnector(ABC):
    """
    Connector interface for fetching raw rows from one kind of source.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier

    @abstractmethod
    def fetch(
        self,
        source: Any,
        date_range: DateRange,
        *,
        credential: str | None = None,
    ) -> FetchedRows:
        """
        Fetch the raw rows of *source* relevant to *date_range*.
        """

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _backoff(self, attempt: int, target: str, error: Exception) -> None:
        """
        Sleep before the next attempt, exponentially longer each time.
        """

        backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
        logger.warning(
            "Connector request retry source=%s attempt=%s/%s wait_seconds=%.2f target=%s error=%s",
            self.source,
            attempt + 1,
            self._max_retries,
            backoff_seconds,
            target,
            error,
        )
        time.sleep(backoff_seconds)

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON with retry support.
        """

        response = self._request(method=method, url=url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as exc:
            raise ConnectorRequestError(
                f"{self.source}: response was not valid JSON.",
                kind=SourceErrorKind.MALFORMED_RESPONSE,
                status_code=response.status_code,
            ) from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Execute an HTTP request with exponential backoff.

        Timeouts, connection errors, 429 and 5xx are retried; every other
        failure is raised immediately.
        """

        last_error: Exception | None = None
        last_status: int | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                last_status = exc.response.status_code if exc.response is not None else None
                if last_status not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Connector request failed source=%s status=%s url=%s error=%s",
                        self.source,
                        last_status,
                        url,
                        exc,
                    )
                    raise ConnectorRequestError(
                        f"{self.source}: request rejected with HTTP {last_status}.",
                        kind=kind_for_status(last_status),
                        status_code=last_status,
                    ) from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc
                last_status = None

            if attempt >= self._max_retries:
                break
            self._backoff(attempt, url, last_error)

        logger.error(
            "Connector request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        raise ConnectorRequestError(
            f"{self.source}: request failed after retries.",
            kind=SourceErrorKind.NETWORK_UNREACHABLE,
            status_code=last_status,
        ) from last_error
