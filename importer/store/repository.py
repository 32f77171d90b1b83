"""Execution repository: persists executions and their audit logs."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .models import ImportExecutionLogRow, ImportExecutionRow
from ..models.execution import (
    ImportExecution,
    ImportExecutionLog,
    ImportStatus,
    LogLevel,
    RecordIssue,
)

logger = logging.getLogger(__name__)


def json_safe(value: Any) -> Any:
    """Coerce values such as datetimes and decimals into JSON-compatible data."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExecutionRepository:
    """
    Stores ImportExecution state and ImportExecutionLog entries.

    Each call uses its own short session so the engine can report
    progress from a worker thread while the API reads it.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the repository.

        Args:
            session_factory: Factory bound to the execution store engine
        """
        self.session_factory = session_factory

    def create(self, execution: ImportExecution) -> ImportExecution:
        with self.session_factory() as session:
            row = ImportExecutionRow(id=execution.id)
            self._apply(row, execution)
            session.add(row)
            session.commit()
        logger.debug(f"Created execution {execution.id}")
        return execution

    def update_progress(self, execution: ImportExecution) -> None:
        """Persist status and counters of a running execution."""
        self._save(execution)

    def finalize(self, execution: ImportExecution) -> None:
        """Persist the terminal state of an execution."""
        if not execution.status.is_terminal:
            logger.warning(f"Finalizing execution {execution.id} in non-terminal status {execution.status.value}")
        self._save(execution)

    def _save(self, execution: ImportExecution) -> None:
        with self.session_factory() as session:
            row = session.get(ImportExecutionRow, execution.id)
            if row is None:
                row = ImportExecutionRow(id=execution.id)
                session.add(row)
            self._apply(row, execution)
            session.commit()

    def _apply(self, row: ImportExecutionRow, execution: ImportExecution) -> None:
        row.configuration_id = execution.configuration_id
        row.target_entity = execution.target_entity
        row.status = execution.status.value
        row.dry_run = execution.dry_run
        row.executed_by = execution.executed_by
        row.total_records = execution.total_records
        row.processed_records = execution.processed_records
        row.successful_records = execution.successful_records
        row.failed_records = execution.failed_records
        row.skipped_records = execution.skipped_records
        row.errors_json = json_safe([e.to_dict() for e in execution.errors])
        row.warnings_json = json_safe([w.to_dict() for w in execution.warnings])
        row.result_summary_json = json_safe(execution.result_summary)
        row.created_at = execution.created_at
        row.started_at = execution.started_at
        row.completed_at = execution.completed_at

    def get(self, execution_id: str) -> Optional[ImportExecution]:
        with self.session_factory() as session:
            row = session.get(ImportExecutionRow, execution_id)
            if row is None:
                return None
            return ImportExecution(
                id=row.id,
                configuration_id=row.configuration_id,
                target_entity=row.target_entity,
                dry_run=row.dry_run,
                executed_by=row.executed_by,
                status=ImportStatus(row.status),
                total_records=row.total_records,
                processed_records=row.processed_records,
                successful_records=row.successful_records,
                failed_records=row.failed_records,
                skipped_records=row.skipped_records,
                errors=[RecordIssue.from_dict(e) for e in row.errors_json or []],
                warnings=[RecordIssue.from_dict(w) for w in row.warnings_json or []],
                result_summary=row.result_summary_json or {},
                created_at=_aware(row.created_at),
                started_at=_aware(row.started_at),
                completed_at=_aware(row.completed_at),
            )

    def list_executions(self, limit: int = 50) -> List[ImportExecution]:
        with self.session_factory() as session:
            ids = session.scalars(
                select(ImportExecutionRow.id).order_by(ImportExecutionRow.created_at.desc()).limit(limit)
            ).all()
        return [e for e in (self.get(i) for i in ids) if e is not None]

    def add_log(self, log: ImportExecutionLog) -> None:
        """Append a log entry; entries are never updated."""
        with self.session_factory() as session:
            session.add(ImportExecutionLogRow(
                id=log.id,
                execution_id=log.execution_id,
                level=log.level.value,
                message=log.message,
                details_json=json_safe(log.details),
                record_index=log.record_index,
                timestamp=log.timestamp,
            ))
            session.commit()

    def list_logs(self, execution_id: str, level: Optional[LogLevel] = None) -> List[ImportExecutionLog]:
        """Return the log entries of an execution in insertion order."""
        query = select(ImportExecutionLogRow).where(ImportExecutionLogRow.execution_id == execution_id)
        if level is not None:
            query = query.where(ImportExecutionLogRow.level == level.value)
        query = query.order_by(ImportExecutionLogRow.seq)

        with self.session_factory() as session:
            return [
                ImportExecutionLog(
                    id=row.id,
                    execution_id=row.execution_id,
                    level=LogLevel(row.level),
                    message=row.message,
                    details=row.details_json,
                    record_index=row.record_index,
                    timestamp=_aware(row.timestamp),
                )
                for row in session.scalars(query)
            ]
