"""Database connectors for MySQL, PostgreSQL and SQLite sources."""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from .base import BaseConnector, ConnectionTestResult, filter_tables, sanitize_identifier
from ..exceptions import QueryError, SchemaIntrospectionError, SourceNotFoundError
from ..models.connection import (
    DatabaseConnection,
    MySQLConnection,
    PostgreSQLConnection,
    SQLiteConnection,
)
from ..models.record import TableData
from ..models.schema import FieldType, SourceField, SourceSchema, SourceTable

logger = logging.getLogger(__name__)


def map_mysql_type(data_type: str, column_type: str = "") -> FieldType:
    """Map a MySQL DATA_TYPE / COLUMN_TYPE pair to a FieldType."""
    dt = (data_type or "").lower()
    ct = (column_type or "").lower()
    if ct.startswith("tinyint(1)") or "bool" in dt or dt == "bit":
        return FieldType.BOOLEAN
    if "int" in dt or dt in ("decimal", "float", "double", "numeric", "real"):
        return FieldType.NUMBER
    if dt == "date":
        return FieldType.DATE
    if dt in ("datetime", "timestamp", "time"):
        return FieldType.DATETIME
    if dt == "json":
        return FieldType.JSON
    if "blob" in dt or "binary" in dt:
        return FieldType.BINARY
    return FieldType.STRING


def map_postgres_type(data_type: str) -> FieldType:
    """Map an information_schema data_type from PostgreSQL to a FieldType."""
    dt = (data_type or "").lower()
    if dt == "boolean" or dt == "bool":
        return FieldType.BOOLEAN
    if ("int" in dt and "interval" not in dt) or "serial" in dt or dt in ("numeric", "decimal", "real", "double precision", "money"):
        return FieldType.NUMBER
    if dt == "date":
        return FieldType.DATE
    if dt.startswith("timestamp") or dt.startswith("time"):
        return FieldType.DATETIME
    if dt in ("json", "jsonb"):
        return FieldType.JSON
    if dt == "bytea":
        return FieldType.BINARY
    return FieldType.STRING


def map_sqlite_type(declared: str) -> FieldType:
    """Map a declared SQLite column type (type affinity) to a FieldType."""
    dt = (declared or "").lower()
    if "bool" in dt:
        return FieldType.BOOLEAN
    if "int" in dt or any(t in dt for t in ("real", "numeric", "decimal", "float", "double")):
        return FieldType.NUMBER
    if "datetime" in dt or "timestamp" in dt:
        return FieldType.DATETIME
    if "date" in dt:
        return FieldType.DATE
    if "json" in dt:
        return FieldType.JSON
    if "blob" in dt:
        return FieldType.BINARY
    return FieldType.STRING


class DatabaseConnector(BaseConnector):
    """
    Shared behaviour for SQL database sources.

    Each call opens a short-lived engine with no pooling, runs its
    statements and disposes the engine before returning.
    """

    config: DatabaseConnection

    ENGINE_LABEL = "Database"

    def _build_url(self) -> URL:
        raise NotImplementedError

    def _connect_args(self) -> Dict[str, Any]:
        return {}

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        engine = create_engine(
            self._build_url(),
            poolclass=NullPool,
            connect_args=self._connect_args(),
        )
        try:
            with engine.connect() as conn:
                yield conn
        finally:
            engine.dispose()

    def test_connection(self) -> ConnectionTestResult:
        started = time.monotonic()
        with self._connect() as conn:
            conn.execute(text("SELECT 1"))
            schema = self._introspect(conn)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        total = schema.total_records
        logger.info(f"{self.ENGINE_LABEL} connection to {self.config.display_name} succeeded in {elapsed_ms}ms")
        return ConnectionTestResult(
            success=True,
            message=(
                f"{self.ENGINE_LABEL} connection successful. "
                f"Found {len(schema.tables)} tables with {total} total records."
            ),
            connection_time_ms=elapsed_ms,
            schema=schema,
            record_count=total,
        )

    def get_schema(self) -> SourceSchema:
        with self._connect() as conn:
            return self._introspect(conn)

    def _introspect(self, conn: Connection) -> SourceSchema:
        """Describe every importable table; any failure aborts the whole scan."""
        try:
            names = filter_tables(self._list_tables(conn))
        except SQLAlchemyError as e:
            raise SchemaIntrospectionError(f"Failed to list tables: {e}") from e

        tables = []
        for name in names:
            try:
                fields = self._describe_table(conn, name)
                count = self._count_rows(conn, name)
            except SQLAlchemyError as e:
                raise SchemaIntrospectionError(f"Failed to introspect table {name}: {e}") from e
            tables.append(SourceTable(name=name, fields=fields, record_count=count))

        logger.debug(f"Introspected {len(tables)} tables from {self.config.display_name}")
        return SourceSchema(tables=tables)

    def _list_tables(self, conn: Connection) -> List[str]:
        raise NotImplementedError

    def _describe_table(self, conn: Connection, table_name: str) -> List[SourceField]:
        raise NotImplementedError

    def _count_rows(self, conn: Connection, table_name: str) -> int:
        result = conn.execute(text(f"SELECT COUNT(*) FROM {self._quote(conn, table_name)}"))
        return int(result.scalar() or 0)

    def _quote(self, conn: Connection, name: str) -> str:
        """Quote a table name as listed by discovery; dots are part of the name."""
        return conn.dialect.identifier_preparer.quote_identifier(sanitize_identifier(name))

    def _resolve_table(self, conn: Connection, table_name: Optional[str]) -> str:
        if table_name:
            return table_name
        names = filter_tables(self._list_tables(conn))
        if not names:
            raise QueryError(f"No tables found in {self.config.display_name}")
        return names[0]

    def _select(
        self,
        conn: Connection,
        sql: str,
        params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        try:
            result = conn.execute(text(sql), params or {})
        except SQLAlchemyError as e:
            raise QueryError(f"Query failed: {e}") from e
        if not result.returns_rows:
            return []
        return [dict(row._mapping) for row in result]

    def fetch_rows(self, table_name: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            table = self._resolve_table(conn, table_name)
            rows = self._select(conn, f"SELECT * FROM {self._quote(conn, table)}")
        logger.info(f"Read {len(rows)} rows from {table}")
        return rows

    def get_table_preview(self, table_name: str, limit: int = 10) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            return self._select(
                conn,
                f"SELECT * FROM {self._quote(conn, table_name)} LIMIT :limit",
                {"limit": int(limit)},
            )

    def get_table_data(self, table_name: str, limit: int = 50, offset: int = 0) -> TableData:
        with self._connect() as conn:
            quoted = self._quote(conn, table_name)
            rows = self._select(
                conn,
                f"SELECT * FROM {quoted} LIMIT :limit OFFSET :offset",
                {"limit": int(limit), "offset": int(offset)},
            )
            total = self._count_rows(conn, table_name)
        return TableData(columns=self._columns_of(rows), rows=rows, total_count=total)

    def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            return self._select(conn, query, params)

    def execute_built_query(
        self,
        build_sql: Callable[[Callable[[str], str]], str],
        params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Build a statement with this dialect's identifier quoting and run it.

        Args:
            build_sql: Called with a function that validates and quotes one identifier
            params: Bound parameters
        """
        with self._connect() as conn:
            preparer = conn.dialect.identifier_preparer
            sql = build_sql(lambda name: preparer.quote_identifier(sanitize_identifier(name)))
            logger.debug(f"Built query: {sql}")
            return self._select(conn, sql, params)


class MySQLConnector(DatabaseConnector):
    """MySQL source using the PyMySQL driver."""

    config: MySQLConnection

    ENGINE_LABEL = "MySQL"

    def _build_url(self) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=self.config.username or None,
            password=self.config.password or None,
            host=self.config.host,
            port=self.config.resolved_port,
            database=self.config.database,
        )

    def _connect_args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {
            "connect_timeout": self.config.connect_timeout or self.settings.connect_timeout_seconds,
            "read_timeout": self.settings.query_timeout_seconds,
        }
        if self.config.ssl:
            args["ssl"] = {"check_hostname": False}
        return args

    def _list_tables(self, conn: Connection) -> List[str]:
        rows = conn.execute(text(
            "SELECT TABLE_NAME FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = :db AND TABLE_TYPE = 'BASE TABLE' "
            "ORDER BY TABLE_NAME"
        ), {"db": self.config.database})
        return [r[0] for r in rows]

    def _describe_table(self, conn: Connection, table_name: str) -> List[SourceField]:
        params = {"db": self.config.database, "table": table_name}
        references = {
            r[0]: r[1]
            for r in conn.execute(text(
                "SELECT COLUMN_NAME, REFERENCED_TABLE_NAME FROM information_schema.KEY_COLUMN_USAGE "
                "WHERE TABLE_SCHEMA = :db AND TABLE_NAME = :table AND REFERENCED_TABLE_NAME IS NOT NULL"
            ), params)
        }
        rows = conn.execute(text(
            "SELECT COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, IS_NULLABLE, "
            "CHARACTER_MAXIMUM_LENGTH, COLUMN_KEY FROM information_schema.COLUMNS "
            "WHERE TABLE_SCHEMA = :db AND TABLE_NAME = :table ORDER BY ORDINAL_POSITION"
        ), params)

        fields = []
        for name, data_type, column_type, is_nullable, max_length, column_key in rows:
            fields.append(SourceField(
                name=name,
                type=map_mysql_type(data_type, column_type),
                nullable=is_nullable == "YES",
                max_length=int(max_length) if max_length else None,
                is_primary_key=column_key == "PRI",
                is_foreign_key=column_key == "MUL" or name in references,
                referenced_table=references.get(name),
            ))
        return fields


class PostgreSQLConnector(DatabaseConnector):
    """PostgreSQL source using psycopg2; introspects the public schema."""

    config: PostgreSQLConnection

    ENGINE_LABEL = "PostgreSQL"
    SCHEMA = "public"

    def _build_url(self) -> URL:
        return URL.create(
            "postgresql+psycopg2",
            username=self.config.username or None,
            password=self.config.password or None,
            host=self.config.host,
            port=self.config.resolved_port,
            database=self.config.database,
        )

    def _connect_args(self) -> Dict[str, Any]:
        statement_timeout_ms = self.settings.query_timeout_seconds * 1000
        args: Dict[str, Any] = {
            "connect_timeout": self.config.connect_timeout or self.settings.connect_timeout_seconds,
            "options": f"-c statement_timeout={statement_timeout_ms}",
        }
        if self.config.ssl:
            args["sslmode"] = "require"
        return args

    def _list_tables(self, conn: Connection) -> List[str]:
        rows = conn.execute(text(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = :schema AND table_type = 'BASE TABLE' "
            "ORDER BY table_name"
        ), {"schema": self.SCHEMA})
        return [r[0] for r in rows]

    def _describe_table(self, conn: Connection, table_name: str) -> List[SourceField]:
        params = {"schema": self.SCHEMA, "table": table_name}
        primary_keys = set()
        references: Dict[str, Optional[str]] = {}
        constraints = conn.execute(text(
            "SELECT kcu.column_name, tc.constraint_type, ccu.table_name "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "  ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema "
            "LEFT JOIN information_schema.constraint_column_usage ccu "
            "  ON tc.constraint_name = ccu.constraint_name AND tc.constraint_type = 'FOREIGN KEY' "
            "WHERE tc.table_schema = :schema AND tc.table_name = :table "
            "AND tc.constraint_type IN ('PRIMARY KEY', 'FOREIGN KEY')"
        ), params)
        for column, constraint_type, referenced in constraints:
            if constraint_type == "PRIMARY KEY":
                primary_keys.add(column)
            else:
                references[column] = referenced

        rows = conn.execute(text(
            "SELECT column_name, data_type, is_nullable, character_maximum_length "
            "FROM information_schema.columns "
            "WHERE table_schema = :schema AND table_name = :table ORDER BY ordinal_position"
        ), params)

        return [
            SourceField(
                name=name,
                type=map_postgres_type(data_type),
                nullable=is_nullable == "YES",
                max_length=int(max_length) if max_length else None,
                is_primary_key=name in primary_keys,
                is_foreign_key=name in references,
                referenced_table=references.get(name),
            )
            for name, data_type, is_nullable, max_length in rows
        ]


class SQLiteConnector(DatabaseConnector):
    """SQLite database file source."""

    config: SQLiteConnection

    ENGINE_LABEL = "SQLite"

    def _build_url(self) -> URL:
        path = Path(self.config.file_path)
        # sqlite3 silently creates missing files
        if not path.is_file():
            raise SourceNotFoundError(f"SQLite database not found: {self.config.file_path}")
        return URL.create("sqlite", database=str(path))

    def _connect_args(self) -> Dict[str, Any]:
        return {"timeout": self.settings.connect_timeout_seconds}

    def _list_tables(self, conn: Connection) -> List[str]:
        rows = conn.execute(text(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ))
        return [r[0] for r in rows]

    def _describe_table(self, conn: Connection, table_name: str) -> List[SourceField]:
        quoted = self._quote(conn, table_name)
        references = {
            r[3]: r[2]
            for r in conn.execute(text(f"PRAGMA foreign_key_list({quoted})"))
        }
        fields = []
        for _cid, name, declared, notnull, _default, pk in conn.execute(text(f"PRAGMA table_info({quoted})")):
            fields.append(SourceField(
                name=name,
                type=map_sqlite_type(declared),
                nullable=not notnull and not pk,
                is_primary_key=bool(pk),
                is_foreign_key=name in references,
                referenced_table=references.get(name),
            ))
        if not fields:
            raise SchemaIntrospectionError(f"Table {table_name} has no columns")
        return fields
