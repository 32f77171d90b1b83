"""Source connectors for databases, files and REST APIs."""

from .base import BaseConnector, ConnectionTestResult
from .database import DatabaseConnector, MySQLConnector, PostgreSQLConnector, SQLiteConnector
from .files import CSVConnector, ExcelConnector, JSONConnector
from .api import RestAPIConnector
from .inference import infer_field_type
from .manager import ConnectionManager

__all__ = [
    "BaseConnector",
    "ConnectionTestResult",
    "DatabaseConnector",
    "MySQLConnector",
    "PostgreSQLConnector",
    "SQLiteConnector",
    "CSVConnector",
    "ExcelConnector",
    "JSONConnector",
    "RestAPIConnector",
    "infer_field_type",
    "ConnectionManager",
]
