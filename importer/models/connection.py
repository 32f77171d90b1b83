"""Connection configuration models, one variant per source type."""

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type

from ..exceptions import ConfigurationError

SECRET_FIELDS = ("password", "api_key", "api_password")
MASK = "********"


class SourceType(str, Enum):
    """Types of import sources."""
    DATABASE_MYSQL = "DATABASE_MYSQL"
    DATABASE_POSTGRESQL = "DATABASE_POSTGRESQL"
    DATABASE_SQLITE = "DATABASE_SQLITE"
    FILE_CSV = "FILE_CSV"
    FILE_EXCEL = "FILE_EXCEL"
    FILE_JSON = "FILE_JSON"
    API_REST = "API_REST"

    @property
    def is_database(self) -> bool:
        return self.value.startswith("DATABASE_")


class AuthType(str, Enum):
    """Authentication strategies for REST API sources."""
    NONE = "none"
    BEARER = "bearer"
    BASIC = "basic"
    API_KEY = "api-key"
    QUERY_PARAM = "query-param"


@dataclass(frozen=True)
class ConnectionConfig:
    """Base class for all connection configurations."""

    @property
    def type(self) -> SourceType:
        raise NotImplementedError

    @property
    def display_name(self) -> str:
        return self.type.value

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """
        Convert to dictionary representation.

        Secrets are masked unless include_secrets is set, so the result
        is safe to log or store alongside an execution.
        """
        data: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, dict):
                value = dict(value)
            if f.name in SECRET_FIELDS and value and not include_secrets:
                value = MASK
            data[f.name] = value
        return data


@dataclass(frozen=True)
class DatabaseConnection(ConnectionConfig):
    """Shared fields for server databases."""
    host: str = "localhost"
    port: Optional[int] = None
    database: str = ""
    username: str = ""
    password: Optional[str] = None
    ssl: bool = False
    connect_timeout: Optional[int] = None

    default_port = 0

    @property
    def resolved_port(self) -> int:
        return self.port or self.default_port

    @property
    def display_name(self) -> str:
        return f"{self.host}:{self.resolved_port}/{self.database}"


@dataclass(frozen=True)
class MySQLConnection(DatabaseConnection):
    """MySQL / MariaDB connection."""

    default_port = 3306

    @property
    def type(self) -> SourceType:
        return SourceType.DATABASE_MYSQL


@dataclass(frozen=True)
class PostgreSQLConnection(DatabaseConnection):
    """PostgreSQL connection."""

    default_port = 5432

    @property
    def type(self) -> SourceType:
        return SourceType.DATABASE_POSTGRESQL


@dataclass(frozen=True)
class SQLiteConnection(ConnectionConfig):
    """SQLite database file."""
    file_path: str = ""

    @property
    def type(self) -> SourceType:
        return SourceType.DATABASE_SQLITE

    @property
    def display_name(self) -> str:
        return self.file_path


@dataclass(frozen=True)
class FileConnection(ConnectionConfig):
    """Shared fields for file sources."""
    file_path: str = ""

    @property
    def display_name(self) -> str:
        return self.file_path

    @property
    def table_name(self) -> str:
        """Files expose a single table named after the file."""
        return Path(self.file_path).stem


@dataclass(frozen=True)
class CSVFileConnection(FileConnection):
    """CSV file source."""
    has_headers: bool = True
    delimiter: str = ","
    encoding: str = "utf-8"

    @property
    def type(self) -> SourceType:
        return SourceType.FILE_CSV


@dataclass(frozen=True)
class ExcelFileConnection(FileConnection):
    """Excel workbook source; each sheet is a table."""
    has_headers: bool = True

    @property
    def type(self) -> SourceType:
        return SourceType.FILE_EXCEL


@dataclass(frozen=True)
class JSONFileConnection(FileConnection):
    """JSON file containing an array of objects."""
    encoding: str = "utf-8"

    @property
    def type(self) -> SourceType:
        return SourceType.FILE_JSON


@dataclass(frozen=True)
class RestAPIConnection(ConnectionConfig):
    """REST API endpoint returning a list of records."""
    api_url: str = ""
    auth_type: AuthType = AuthType.NONE
    api_key: Optional[str] = None
    api_password: Optional[str] = None
    api_key_header: str = "X-API-Key"
    api_key_param: str = "api_key"
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    limit_param: Optional[str] = None
    timeout: Optional[int] = None

    TABLE_NAME = "api_data"

    @property
    def type(self) -> SourceType:
        return SourceType.API_REST

    @property
    def display_name(self) -> str:
        return self.api_url


CONNECTION_TYPES: Dict[SourceType, Type[ConnectionConfig]] = {
    SourceType.DATABASE_MYSQL: MySQLConnection,
    SourceType.DATABASE_POSTGRESQL: PostgreSQLConnection,
    SourceType.DATABASE_SQLITE: SQLiteConnection,
    SourceType.FILE_CSV: CSVFileConnection,
    SourceType.FILE_EXCEL: ExcelFileConnection,
    SourceType.FILE_JSON: JSONFileConnection,
    SourceType.API_REST: RestAPIConnection,
}

# camelCase keys accepted from UI payloads and saved configurations
_ALIASES = {
    "filePath": "file_path",
    "hasHeaders": "has_headers",
    "apiUrl": "api_url",
    "authType": "auth_type",
    "apiKey": "api_key",
    "apiPassword": "api_password",
    "apiKeyHeader": "api_key_header",
    "apiKeyParam": "api_key_param",
    "limitParam": "limit_param",
    "connectTimeout": "connect_timeout",
}


def connection_from_dict(data: Dict[str, Any]) -> ConnectionConfig:
    """
    Build the connection variant selected by the "type" key.

    Args:
        data: Configuration dictionary (snake_case or camelCase keys)

    Returns:
        The matching ConnectionConfig subclass instance
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Connection configuration must be an object")

    raw_type = data.get("type")
    try:
        source_type = SourceType(str(raw_type).upper())
    except ValueError:
        raise ConfigurationError(f"Unsupported source type: {raw_type}")

    cls = CONNECTION_TYPES[source_type]
    allowed = {f.name for f in fields(cls)}

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "type":
            continue
        name = _ALIASES.get(key, key)
        if name not in allowed:
            continue
        kwargs[name] = value

    if "auth_type" in kwargs:
        try:
            kwargs["auth_type"] = AuthType(kwargs["auth_type"] or "none")
        except ValueError:
            raise ConfigurationError(f"Unsupported auth type: {kwargs['auth_type']}")
    if "port" in kwargs and kwargs["port"] is not None:
        kwargs["port"] = int(kwargs["port"])

    config = cls(**kwargs)
    _check_required(config)
    return config


def _check_required(config: ConnectionConfig) -> None:
    """Reject configurations missing the fields their kind cannot work without."""
    if isinstance(config, DatabaseConnection) and not config.database:
        raise ConfigurationError(f"{config.type.value} connection requires a database name")
    if isinstance(config, (SQLiteConnection, FileConnection)) and not config.file_path:
        raise ConfigurationError(f"{config.type.value} connection requires a file path")
    if isinstance(config, RestAPIConnection) and not config.api_url:
        raise ConfigurationError("API_REST connection requires an API URL")
