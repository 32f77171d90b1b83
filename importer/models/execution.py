"""Import execution models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from ..exceptions import InvalidStateTransition


def utcnow() -> datetime:
    """Timezone-aware current UTC time; the default engine clock."""
    return datetime.now(timezone.utc)


class ImportStatus(str, Enum):
    """Status of an import execution."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED, ImportStatus.CANCELLED)


ALLOWED_TRANSITIONS = {
    ImportStatus.PENDING: {ImportStatus.RUNNING, ImportStatus.FAILED, ImportStatus.CANCELLED},
    ImportStatus.RUNNING: {ImportStatus.COMPLETED, ImportStatus.FAILED, ImportStatus.CANCELLED},
}


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


@dataclass
class RecordIssue:
    """An error or warning raised while importing, optionally tied to a row."""
    message: str
    record_index: Optional[int] = None
    field: Optional[str] = None
    value: Optional[Any] = None
    severity: str = "error"  # error, warning

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "message": self.message,
            "record_index": self.record_index,
            "field": self.field,
            "value": self.value,
            "severity": self.severity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordIssue":
        return cls(
            message=data.get("message", ""),
            record_index=data.get("record_index"),
            field=data.get("field"),
            value=data.get("value"),
            severity=data.get("severity", "error"),
        )


@dataclass
class ImportExecution:
    """
    One run of the import pipeline.

    Created before processing starts, updated as rows are processed and
    finalized exactly once.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    configuration_id: Optional[str] = None
    target_entity: str = ""
    dry_run: bool = False
    executed_by: str = "system"
    status: ImportStatus = ImportStatus.PENDING
    total_records: int = 0
    processed_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    skipped_records: int = 0
    errors: List[RecordIssue] = field(default_factory=list)
    warnings: List[RecordIssue] = field(default_factory=list)
    result_summary: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def transition(self, status: ImportStatus) -> None:
        """Move to a new status, refusing to leave a terminal status."""
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransition(
                f"Cannot move execution {self.id} from {self.status.value} to {status.value}"
            )
        self.status = status

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at and self.completed_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "configuration_id": self.configuration_id,
            "target_entity": self.target_entity,
            "dry_run": self.dry_run,
            "executed_by": self.executed_by,
            "status": self.status.value,
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "skipped_records": self.skipped_records,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "result_summary": self.result_summary,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ImportExecutionLog:
    """An append-only audit entry for an execution."""
    execution_id: str
    level: LogLevel
    message: str
    details: Optional[Dict[str, Any]] = None
    record_index: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "level": self.level.value,
            "message": self.message,
            "details": self.details,
            "record_index": self.record_index,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ImportProgress:
    """Snapshot handed to progress callbacks."""
    execution_id: str
    status: ImportStatus
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    current_record: int
    estimated_time_remaining_ms: Optional[int] = None
    errors: List[RecordIssue] = field(default_factory=list)
    warnings: List[RecordIssue] = field(default_factory=list)

    @property
    def percent_complete(self) -> float:
        if self.total_records == 0:
            return 100.0
        return round(self.processed_records / self.total_records * 100, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "current_record": self.current_record,
            "estimated_time_remaining_ms": self.estimated_time_remaining_ms,
            "percent_complete": self.percent_complete,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ImportResult:
    """Final outcome of an execution."""
    execution_id: str
    status: ImportStatus
    total_records: int = 0
    processed_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    skipped_records: int = 0
    errors: List[RecordIssue] = field(default_factory=list)
    warnings: List[RecordIssue] = field(default_factory=list)
    duration_ms: int = 0
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ImportStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "skipped_records": self.skipped_records,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "duration_ms": self.duration_ms,
            "summary": self.summary,
        }
