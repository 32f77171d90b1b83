"""Execution store backed by SQLAlchemy."""

from .database import Base, check_connection, create_session_factory, create_store_engine, init_db
from .models import ImportedRecordRow, ImportExecutionLogRow, ImportExecutionRow
from .repository import ExecutionRepository, json_safe

__all__ = [
    "Base",
    "check_connection",
    "create_session_factory",
    "create_store_engine",
    "init_db",
    "ImportedRecordRow",
    "ImportExecutionLogRow",
    "ImportExecutionRow",
    "ExecutionRepository",
    "json_safe",
]
