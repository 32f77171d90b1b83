"""Data models for the import pipeline."""

from .connection import (
    SourceType,
    AuthType,
    ConnectionConfig,
    DatabaseConnection,
    MySQLConnection,
    PostgreSQLConnection,
    SQLiteConnection,
    FileConnection,
    CSVFileConnection,
    ExcelFileConnection,
    JSONFileConnection,
    RestAPIConnection,
    connection_from_dict,
)
from .schema import (
    FieldType,
    SourceField,
    SourceTable,
    SourceSchema,
    JoinType,
    JoinOperator,
    JoinCondition,
    JoinedTable,
    JoinedTableConfig,
)
from .mapping import (
    TransformKind,
    ValidationKind,
    TransformRule,
    ValidationRule,
    FieldMapping,
    EntityMapping,
)
from .execution import (
    ImportStatus,
    LogLevel,
    RecordIssue,
    ImportExecution,
    ImportExecutionLog,
    ImportProgress,
    ImportResult,
)
from .record import (
    FieldValidationResult,
    ProcessedRecord,
    TableData,
)

__all__ = [
    "SourceType",
    "AuthType",
    "ConnectionConfig",
    "DatabaseConnection",
    "MySQLConnection",
    "PostgreSQLConnection",
    "SQLiteConnection",
    "FileConnection",
    "CSVFileConnection",
    "ExcelFileConnection",
    "JSONFileConnection",
    "RestAPIConnection",
    "connection_from_dict",
    "FieldType",
    "SourceField",
    "SourceTable",
    "SourceSchema",
    "JoinType",
    "JoinOperator",
    "JoinCondition",
    "JoinedTable",
    "JoinedTableConfig",
    "TransformKind",
    "ValidationKind",
    "TransformRule",
    "ValidationRule",
    "FieldMapping",
    "EntityMapping",
    "ImportStatus",
    "LogLevel",
    "RecordIssue",
    "ImportExecution",
    "ImportExecutionLog",
    "ImportProgress",
    "ImportResult",
    "FieldValidationResult",
    "ProcessedRecord",
    "TableData",
]
