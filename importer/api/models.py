"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.execution import ImportExecution, ImportExecutionLog, ImportStatus, LogLevel


# Request Models
class ConnectionRequest(BaseModel):
    connection: Dict[str, Any]


class TablePreviewRequest(ConnectionRequest):
    table_name: str
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class JoinPreviewRequest(ConnectionRequest):
    joined_table: Dict[str, Any]
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    search: Optional[str] = None


class ExecutionCreate(ConnectionRequest):
    mapping: Dict[str, Any]
    table_name: Optional[str] = None
    joined_table: Optional[Dict[str, Any]] = None
    dry_run: bool = False
    configuration_id: Optional[str] = None
    executed_by: str = "api"


# Response Models
class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    connection_time_ms: int = 0
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    record_count: Optional[int] = None

    model_config = {"populate_by_name": True}


class TablePreviewResponse(BaseModel):
    table_name: str
    columns: List[str]
    rows: List[Dict[str, Any]]


class JoinPreviewResponse(BaseModel):
    columns: List[str]
    rows: List[Dict[str, Any]]
    approximate: bool
    message: str
    total_rows: int


class IssueResponse(BaseModel):
    message: str
    record_index: Optional[int] = None
    field: Optional[str] = None
    value: Optional[Any] = None
    severity: str = "error"


class ExecutionResponse(BaseModel):
    id: str
    configuration_id: Optional[str] = None
    target_entity: str
    status: ImportStatus
    dry_run: bool
    executed_by: str
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    skipped_records: int
    errors: List[IssueResponse] = Field(default_factory=list)
    warnings: List[IssueResponse] = Field(default_factory=list)
    result_summary: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    @classmethod
    def from_execution(cls, execution: ImportExecution) -> "ExecutionResponse":
        return cls(
            id=execution.id,
            configuration_id=execution.configuration_id,
            target_entity=execution.target_entity,
            status=execution.status,
            dry_run=execution.dry_run,
            executed_by=execution.executed_by,
            total_records=execution.total_records,
            processed_records=execution.processed_records,
            successful_records=execution.successful_records,
            failed_records=execution.failed_records,
            skipped_records=execution.skipped_records,
            errors=[IssueResponse(**e.to_dict()) for e in execution.errors],
            warnings=[IssueResponse(**w.to_dict()) for w in execution.warnings],
            result_summary=execution.result_summary,
            created_at=execution.created_at,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            duration_ms=execution.duration_ms,
        )


class ExecutionLogResponse(BaseModel):
    id: str
    level: LogLevel
    message: str
    details: Optional[Dict[str, Any]] = None
    record_index: Optional[int] = None
    timestamp: datetime

    @classmethod
    def from_log(cls, log: ImportExecutionLog) -> "ExecutionLogResponse":
        return cls(
            id=log.id,
            level=log.level,
            message=log.message,
            details=log.details,
            record_index=log.record_index,
            timestamp=log.timestamp,
        )


class ExecutionLogListResponse(BaseModel):
    execution_id: str
    logs: List[ExecutionLogResponse]
    total: int
