"""Connection manager: one entry point over every source connector."""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .api import RestAPIConnector
from .base import BaseConnector, ConnectionTestResult
from .database import MySQLConnector, PostgreSQLConnector, SQLiteConnector
from .files import CSVConnector, ExcelConnector, JSONConnector
from ..config import Settings, get_settings
from ..exceptions import ConfigurationError
from ..models.connection import ConnectionConfig, SourceType
from ..models.record import TableData
from ..models.schema import SourceSchema

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tests connections, derives schemas and reads rows from import sources.

    Handles:
    - Connector selection by source type
    - Connection tests that never raise
    - Schema discovery, previews, pagination and raw queries

    Every call builds a fresh connector; nothing is pooled between calls.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_session: Optional[requests.Session] = None
    ):
        """
        Initialize the manager.

        Args:
            settings: Application settings (timeouts, sample sizes)
            http_session: Session shared by REST API connectors
        """
        self.settings = settings or get_settings()
        self._http_session = http_session
        self._factories: Dict[SourceType, Callable[[ConnectionConfig], BaseConnector]] = {
            SourceType.DATABASE_MYSQL: lambda c: MySQLConnector(c, self.settings),
            SourceType.DATABASE_POSTGRESQL: lambda c: PostgreSQLConnector(c, self.settings),
            SourceType.DATABASE_SQLITE: lambda c: SQLiteConnector(c, self.settings),
            SourceType.FILE_CSV: lambda c: CSVConnector(c, self.settings),
            SourceType.FILE_EXCEL: lambda c: ExcelConnector(c, self.settings),
            SourceType.FILE_JSON: lambda c: JSONConnector(c, self.settings),
            SourceType.API_REST: lambda c: RestAPIConnector(c, self.settings, session=self._http_session),
        }

    def get_connector(self, config: ConnectionConfig) -> BaseConnector:
        """Create the connector for a connection configuration."""
        factory = self._factories.get(config.type)
        if not factory:
            raise ConfigurationError(f"Unsupported source type: {config.type}")
        return factory(config)

    def test_connection(self, config: ConnectionConfig) -> ConnectionTestResult:
        """
        Test a connection and discover its schema.

        Never raises: any failure is reported as success=False.

        Args:
            config: Connection configuration

        Returns:
            ConnectionTestResult with timing, schema and record count
        """
        started = time.monotonic()
        try:
            result = self.get_connector(config).test_connection()
            logger.info(f"Connection test for {config.type.value} {config.display_name}: {result.message}")
            return result
        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Connection test failed for {config.type.value} {config.display_name}: {e}")
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: {e}",
                connection_time_ms=elapsed_ms,
            )

    def get_source_schema(self, config: ConnectionConfig) -> SourceSchema:
        """Derive the current schema of a source."""
        return self.get_connector(config).get_schema()

    def get_table_preview(
        self,
        config: ConnectionConfig,
        table_name: str,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return the first rows of a table."""
        limit = limit or self.settings.preview_limit
        return self.get_connector(config).get_table_preview(table_name, limit)

    def get_table_data(
        self,
        config: ConnectionConfig,
        table_name: str,
        limit: int = 50,
        offset: int = 0
    ) -> TableData:
        """Return one page of rows plus the table's total row count."""
        return self.get_connector(config).get_table_data(table_name, limit, offset)

    def execute_query(
        self,
        config: ConnectionConfig,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Run a query against a database source."""
        return self.get_connector(config).execute_query(query, params)

    def fetch_rows(self, config: ConnectionConfig, table_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read every row of a table into memory."""
        return self.get_connector(config).fetch_rows(table_name)
