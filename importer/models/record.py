"""Per-row record models used while processing an import."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .execution import RecordIssue


@dataclass
class FieldValidationResult:
    """Outcome of the validation rules for one mapped field."""
    field: str
    valid: bool
    message: Optional[str] = None
    rule: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "valid": self.valid,
            "message": self.message,
            "rule": self.rule,
        }


@dataclass
class ProcessedRecord:
    """
    A source row after mapping, transformation and validation.

    Exists only while one row is being processed; transformed_data always
    holds every target field, even when the row failed.
    """
    index: int
    original_data: Dict[str, Any]
    transformed_data: Dict[str, Any] = field(default_factory=dict)
    validation_results: List[FieldValidationResult] = field(default_factory=list)
    errors: List[RecordIssue] = field(default_factory=list)
    warnings: List[RecordIssue] = field(default_factory=list)
    skip: bool = False

    @property
    def is_successful(self) -> bool:
        return not self.skip and not self.errors

    def add_error(self, message: str, field: Optional[str] = None, value: Any = None) -> None:
        self.errors.append(RecordIssue(
            message=message,
            record_index=self.index,
            field=field,
            value=value,
            severity="error",
        ))

    def add_warning(self, message: str, field: Optional[str] = None, value: Any = None) -> None:
        self.warnings.append(RecordIssue(
            message=message,
            record_index=self.index,
            field=field,
            value=value,
            severity="warning",
        ))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "original_data": self.original_data,
            "transformed_data": self.transformed_data,
            "validation_results": [v.to_dict() for v in self.validation_results],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "skip": self.skip,
        }


@dataclass
class TableData:
    """A page of rows read from a source table."""
    columns: List[str]
    rows: List[Dict[str, Any]]
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": self.columns,
            "rows": self.rows,
            "total_count": self.total_count,
        }
