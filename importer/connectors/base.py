"""Base connector interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from ..config import Settings, get_settings
from ..exceptions import QueryError, UnsupportedOperationError
from ..models.connection import ConnectionConfig
from ..models.record import TableData
from ..models.schema import SourceSchema

logger = logging.getLogger(__name__)

# Framework bookkeeping tables that are never useful import sources
INFRASTRUCTURE_TABLES = ("migrations", "failed_jobs", "password_resets", "personal_access_tokens")
INFRASTRUCTURE_PREFIXES = ("cache", "sessions")
UNFILTERED_TABLE_LIMIT = 10


def is_infrastructure_table(name: str) -> bool:
    """Check whether a table name belongs to framework bookkeeping."""
    lowered = name.lower()
    return lowered in INFRASTRUCTURE_TABLES or lowered.startswith(INFRASTRUCTURE_PREFIXES)


def filter_tables(names: List[str]) -> List[str]:
    """
    Drop infrastructure tables from a listing.

    Falls back to the first tables of the unfiltered listing when the filter
    would leave nothing, so the operator never sees an empty schema.
    """
    filtered = [n for n in names if not is_infrastructure_table(n)]
    if filtered:
        return filtered
    if names:
        logger.info("All tables matched the infrastructure filter, showing unfiltered listing")
    return names[:UNFILTERED_TABLE_LIMIT]


def sanitize_identifier(name: str) -> str:
    """
    Check a table or column name before it is quoted into SQL.

    Any character is allowed; the dialect's identifier preparer escapes
    embedded quotes. Only empty names and NUL bytes are refused.
    """
    if not name or "\x00" in name:
        raise QueryError(f"Invalid identifier: {name!r}")
    return name


@dataclass
class ConnectionTestResult:
    """Result of a connection test."""
    success: bool
    message: str
    connection_time_ms: int = 0
    schema: Optional[SourceSchema] = None
    record_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "message": self.message,
            "connection_time_ms": self.connection_time_ms,
            "schema": self.schema.to_dict() if self.schema else None,
            "record_count": self.record_count,
        }


class BaseConnector(ABC):
    """
    Base class for all source connectors.

    Connectors read rows and derive a normalized schema from one source.
    They open resources per call and release them before returning.
    """

    def __init__(self, config: ConnectionConfig, settings: Optional[Settings] = None):
        """
        Initialize the connector.

        Args:
            config: Connection configuration for the source
            settings: Application settings (timeouts, sample sizes)
        """
        self.config = config
        self.settings = settings or get_settings()

    @abstractmethod
    def test_connection(self) -> ConnectionTestResult:
        """
        Check that the source is reachable and describe it.

        May raise; ConnectionManager turns exceptions into a failed result.
        """
        pass

    @abstractmethod
    def get_schema(self) -> SourceSchema:
        """
        Derive the schema of the source.

        Returns:
            SourceSchema for every importable table
        """
        pass

    @abstractmethod
    def fetch_rows(self, table_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Read every row of a table into memory.

        Args:
            table_name: Table to read; defaults to the first table

        Returns:
            List of row dictionaries in source order
        """
        pass

    def get_table_preview(self, table_name: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Return the first rows of a table."""
        return self.fetch_rows(table_name)[:limit]

    def get_table_data(self, table_name: str, limit: int = 50, offset: int = 0) -> TableData:
        """Return one page of a table together with its total size."""
        rows = self.fetch_rows(table_name)
        page = rows[offset:offset + limit]
        return TableData(columns=self._columns_of(rows), rows=page, total_count=len(rows))

    def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a raw query; only database sources support this."""
        raise UnsupportedOperationError(
            f"Queries are not supported for {self.config.type.value} sources"
        )

    def _columns_of(self, rows: List[Dict[str, Any]]) -> List[str]:
        columns: List[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        return columns
