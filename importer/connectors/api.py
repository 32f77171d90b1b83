"""REST API connector."""

import base64
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseConnector, ConnectionTestResult
from .inference import infer_fields
from ..exceptions import ConnectorError, QueryError
from ..models.connection import AuthType, RestAPIConnection
from ..models.schema import SourceSchema, SourceTable

logger = logging.getLogger(__name__)

ENVELOPE_KEYS = ("data", "items", "results")


def unwrap_records(payload: Any) -> List[Dict[str, Any]]:
    """
    Flatten common response envelopes into a list of records.

    Handles a bare array, {"data": [...]}, {"items": [...]} and
    {"results": [...]}; any other object is treated as a single record.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                items = payload[key]
                break
        else:
            items = [payload]
    elif payload is None:
        items = []
    else:
        items = [{"value": payload}]

    return [item if isinstance(item, dict) else {"value": item} for item in items]


class RestAPIConnector(BaseConnector):
    """
    Connector for REST endpoints returning JSON.

    Supports:
    - Bearer, basic, API key header and query parameter authentication
    - Retry with backoff on 429 and 5xx responses
    - Envelope unwrapping (bare array, data, items, results)
    """

    config: RestAPIConnection

    def __init__(self, config: RestAPIConnection, settings=None, session: Optional[requests.Session] = None):
        """
        Initialize the API connector.

        Args:
            config: REST API connection configuration
            settings: Application settings
            session: Custom requests session
        """
        super().__init__(config, settings)
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self.settings.api_max_retries,
            backoff_factor=self.settings.api_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=None,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    @property
    def timeout(self) -> int:
        return self.config.timeout or self.settings.api_timeout_seconds

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for the configured auth type."""
        auth_type = self.config.auth_type
        key = self.config.api_key

        if not key:
            return {}
        if auth_type == AuthType.BEARER:
            return {"Authorization": f"Bearer {key}"}
        elif auth_type == AuthType.API_KEY:
            return {self.config.api_key_header or "X-API-Key": key}
        elif auth_type == AuthType.BASIC:
            credentials = base64.b64encode(
                f"{key}:{self.config.api_password or ''}".encode()
            ).decode()
            return {"Authorization": f"Basic {credentials}"}

        return {}

    def _get_auth_params(self) -> Dict[str, str]:
        if self.config.auth_type == AuthType.QUERY_PARAM and self.config.api_key:
            return {self.config.api_key_param or "api_key": self.config.api_key}
        return {}

    def _request(self, limit: Optional[int] = None) -> Any:
        headers = {"Accept": "application/json", **self.config.headers, **self._get_auth_headers()}
        params = self._get_auth_params()
        if limit is not None and self.config.limit_param:
            params[self.config.limit_param] = limit

        logger.debug(f"{self.config.method} {self.config.api_url}")
        try:
            response = self._session.request(
                self.config.method or "GET",
                self.config.api_url,
                headers=headers,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise ConnectorError(f"API request failed with status {e.response.status_code}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ConnectorError(f"API request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ConnectorError(f"API response is not valid JSON: {e}") from e

    def test_connection(self) -> ConnectionTestResult:
        started = time.monotonic()
        rows = unwrap_records(self._request())
        elapsed_ms = int((time.monotonic() - started) * 1000)

        schema = self._schema_from(rows)
        return ConnectionTestResult(
            success=True,
            message=f"API connection successful. Found {len(rows)} records.",
            connection_time_ms=elapsed_ms,
            schema=schema,
            record_count=len(rows),
        )

    def get_schema(self) -> SourceSchema:
        return self._schema_from(unwrap_records(self._request()))

    def _schema_from(self, rows: List[Dict[str, Any]]) -> SourceSchema:
        table = SourceTable(
            name=RestAPIConnection.TABLE_NAME,
            fields=infer_fields(rows, self._columns_of(rows), self.settings.inference_sample_size),
            record_count=len(rows),
        )
        return SourceSchema(tables=[table])

    def _check_table(self, table_name: Optional[str]) -> None:
        if table_name and table_name != RestAPIConnection.TABLE_NAME:
            raise QueryError(f"API sources expose a single table named {RestAPIConnection.TABLE_NAME}")

    def fetch_rows(self, table_name: Optional[str] = None) -> List[Dict[str, Any]]:
        self._check_table(table_name)
        rows = unwrap_records(self._request())
        logger.info(f"Fetched {len(rows)} records from {self.config.api_url}")
        return rows

    def get_table_preview(self, table_name: str, limit: int = 10) -> List[Dict[str, Any]]:
        self._check_table(table_name)
        return unwrap_records(self._request(limit=limit))[:limit]
