"""Import execution engine - drives one import run from source rows to saved records."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .config import Settings, get_settings
from .connectors.manager import ConnectionManager
from .exceptions import ConfigurationError, ImporterError
from .loaders.base import EntityLoaderRegistry
from .models.connection import ConnectionConfig
from .models.execution import (
    ImportExecution,
    ImportExecutionLog,
    ImportProgress,
    ImportResult,
    ImportStatus,
    LogLevel,
    RecordIssue,
    utcnow,
)
from .models.mapping import EntityMapping
from .models.schema import JoinedTableConfig
from .services.join_planner import JoinPlanner
from .services.processor import RecordProcessor
from .services.transformer import Clock
from .store.repository import ExecutionRepository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]

_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class CancellationToken:
    """Cooperative cancellation flag checked once per processed row."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ImportRequest:
    """What to import: a source table (or join) and the mapping for one entity."""
    connection: ConnectionConfig
    entity_mapping: EntityMapping
    table_name: Optional[str] = None
    joined_table: Optional[JoinedTableConfig] = None
    dry_run: bool = False

    @property
    def target_entity(self) -> str:
        return self.entity_mapping.target_entity


class _RunAborted(Exception):
    """The run cannot start processing rows; the message is the fatal error."""


class ImportExecutionEngine:
    """
    Executes imports.

    Handles:
    - Up-front validation of the mapping and target entity
    - Connection checks and row materialization (table or server-side join)
    - Per-row processing with partial-failure accounting
    - Progress reporting with ETA
    - Cooperative cancellation
    - Dry runs that skip only the save step
    - An audit log written to the execution store
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        loader_registry: EntityLoaderRegistry,
        repository: Optional[ExecutionRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        processor: Optional[RecordProcessor] = None
    ):
        """
        Initialize the engine.

        Args:
            connection_manager: Manager used to reach the source
            loader_registry: Save handlers by target entity
            repository: Execution store; None keeps the run in memory only
            settings: Application settings (progress interval)
            clock: Callable returning the current datetime
            processor: Record processor; built from the clock when omitted
        """
        self.connection_manager = connection_manager
        self.loader_registry = loader_registry
        self.repository = repository
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.processor = processor or RecordProcessor(clock=self.clock)
        self.join_planner = JoinPlanner(connection_manager)
        self._active_token: Optional[CancellationToken] = None

    def cancel(self) -> None:
        """Cancel the execution currently running on this engine."""
        if self._active_token is not None:
            self._active_token.cancel()

    def validate_request(self, request: ImportRequest) -> str:
        """
        Check a request before anything runs.

        Returns:
            Canonical target entity name

        Raises:
            ConfigurationError: invalid mapping or unknown target entity
        """
        problems = request.entity_mapping.validate()
        if problems:
            raise ConfigurationError("Invalid entity mapping: " + "; ".join(problems))
        if request.table_name and request.joined_table:
            raise ConfigurationError("Specify either a table name or a joined table, not both")

        if request.dry_run:
            return self.loader_registry.canonical_name(request.target_entity)
        return self.loader_registry.validate(request.target_entity)

    def execute_import(
        self,
        execution: ImportExecution,
        request: ImportRequest,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> ImportResult:
        """
        Run an import.

        Args:
            execution: PENDING execution to drive
            request: Source, mapping and dry-run flag
            cancel_token: Token checked before every row
            progress_callback: Receives ImportProgress snapshots

        Returns:
            ImportResult with final counts and summary
        """
        entity = self.validate_request(request)
        save = None if request.dry_run else self.loader_registry.resolve(entity)
        token = cancel_token or CancellationToken()
        self._active_token = token

        execution.target_entity = entity
        execution.dry_run = request.dry_run
        execution.transition(ImportStatus.RUNNING)
        execution.started_at = self.clock()
        self._save_progress(execution)

        self._log(
            execution,
            LogLevel.INFO,
            "Starting dry run execution" if request.dry_run else "Starting import execution",
            {"target_entity": entity, "source_type": request.connection.type.value},
        )

        try:
            rows = self._load_rows(execution, request)
            self._process_rows(execution, request, rows, save, token, progress_callback)
            if token.is_cancelled:
                execution.transition(ImportStatus.CANCELLED)
                self._log(execution, LogLevel.WARN, f"Import cancelled after {execution.processed_records} records")
            elif execution.errors:
                execution.transition(ImportStatus.FAILED)
            else:
                execution.transition(ImportStatus.COMPLETED)
        except _RunAborted as e:
            execution.errors.append(RecordIssue(message=str(e)))
            self._log(execution, LogLevel.ERROR, str(e))
            execution.transition(ImportStatus.FAILED)
        except Exception as e:
            logger.exception(f"Import execution {execution.id} failed")
            execution.errors.append(RecordIssue(message=f"Import failed: {e}"))
            self._log(execution, LogLevel.ERROR, f"Import failed: {e}")
            execution.transition(ImportStatus.FAILED)
        finally:
            self._active_token = None

        return self._finalize(execution)

    def _load_rows(self, execution: ImportExecution, request: ImportRequest) -> List[Dict[str, Any]]:
        test = self.connection_manager.test_connection(request.connection)
        if not test.success:
            raise _RunAborted(test.message)

        try:
            if request.joined_table is not None:
                rows = self.join_planner.execute(request.connection, request.joined_table)
            else:
                rows = self.connection_manager.fetch_rows(request.connection, request.table_name)
        except ImporterError as e:
            raise _RunAborted(f"Failed to read source data: {e}") from e

        execution.total_records = len(rows)
        self._log(execution, LogLevel.INFO, f"Found {len(rows)} records to process")
        return rows

    def _process_rows(
        self,
        execution: ImportExecution,
        request: ImportRequest,
        rows: List[Dict[str, Any]],
        save: Optional[Callable[[Dict[str, Any]], Optional[str]]],
        token: CancellationToken,
        progress_callback: Optional[ProgressCallback]
    ) -> None:
        mappings = request.entity_mapping.field_mappings
        interval = self.settings.progress_interval
        self._report_progress(execution, progress_callback, current_record=0)

        for i, raw in enumerate(rows):
            if token.is_cancelled:
                break

            # Each branch logs before it counts, so a row is counted at most once
            try:
                record = self.processor.process_record(raw, mappings, i)
                if record.skip:
                    self._log(execution, LogLevel.WARN, f"Skipped record {i + 1}", record_index=i)
                    execution.skipped_records += 1
                elif record.errors:
                    self._log(
                        execution,
                        LogLevel.ERROR,
                        f"Failed to process record {i + 1}",
                        {"errors": [e.to_dict() for e in record.errors], "record": record.original_data},
                        record_index=i,
                    )
                    execution.failed_records += 1
                    execution.errors.extend(record.errors)
                else:
                    self._save_record(execution, save, record.transformed_data, i)
                execution.warnings.extend(record.warnings)
            except Exception as e:
                execution.failed_records += 1
                issue = RecordIssue(message=f"Failed to process record: {e}", record_index=i)
                execution.errors.append(issue)
                self._log(
                    execution,
                    LogLevel.ERROR,
                    f"Error processing record {i + 1}: {issue.message}",
                    {"record": raw},
                    record_index=i,
                )

            execution.processed_records += 1
            if (i + 1) % interval == 0 or i == len(rows) - 1:
                self._report_progress(execution, progress_callback, current_record=i + 1)

    def _save_record(
        self,
        execution: ImportExecution,
        save: Optional[Callable[[Dict[str, Any]], Optional[str]]],
        data: Dict[str, Any],
        index: int
    ) -> None:
        if save is not None:
            try:
                save(data)
            except Exception as e:
                self._log(execution, LogLevel.ERROR, f"Failed to save record {index + 1}: {e}", record_index=index)
                execution.failed_records += 1
                execution.errors.append(RecordIssue(message=f"Failed to save record: {e}", record_index=index))
                return

        self._log(execution, LogLevel.DEBUG, f"Successfully processed record {index + 1}", record_index=index)
        execution.successful_records += 1

    def _report_progress(
        self,
        execution: ImportExecution,
        progress_callback: Optional[ProgressCallback],
        current_record: int
    ) -> None:
        self._save_progress(execution)
        if progress_callback is None:
            return

        progress = ImportProgress(
            execution_id=execution.id,
            status=execution.status,
            total_records=execution.total_records,
            processed_records=execution.processed_records,
            successful_records=execution.successful_records,
            failed_records=execution.failed_records,
            current_record=current_record,
            estimated_time_remaining_ms=self._estimate_remaining_ms(execution),
            errors=list(execution.errors),
            warnings=list(execution.warnings),
        )
        try:
            progress_callback(progress)
        except Exception as e:
            logger.warning(f"Progress callback failed for execution {execution.id}: {e}")

    def _estimate_remaining_ms(self, execution: ImportExecution) -> Optional[int]:
        if not execution.processed_records or execution.started_at is None:
            return None
        elapsed_ms = (self.clock() - execution.started_at).total_seconds() * 1000
        remaining = execution.total_records - execution.processed_records
        return max(0, int(elapsed_ms / execution.processed_records * remaining))

    def _finalize(self, execution: ImportExecution) -> ImportResult:
        execution.completed_at = self.clock()
        duration_ms = execution.duration_ms or 0
        total = execution.total_records

        execution.result_summary = {
            "target_entity": execution.target_entity,
            "dry_run": execution.dry_run,
            "records_per_second": round(total / (duration_ms / 1000), 2) if duration_ms and total else 0.0,
            "average_processing_time_ms": round(duration_ms / total, 2) if total else 0.0,
            "error_rate": round(execution.failed_records / total, 4) if total else 0.0,
        }

        self._log(
            execution,
            LogLevel.INFO,
            f"Import completed in {duration_ms}ms. "
            f"Success: {execution.successful_records}, Failed: {execution.failed_records}, "
            f"Skipped: {execution.skipped_records}",
            {"status": execution.status.value},
        )
        if self.repository is not None:
            self.repository.finalize(execution)

        return ImportResult(
            execution_id=execution.id,
            status=execution.status,
            total_records=total,
            processed_records=execution.processed_records,
            successful_records=execution.successful_records,
            failed_records=execution.failed_records,
            skipped_records=execution.skipped_records,
            errors=list(execution.errors),
            warnings=list(execution.warnings),
            duration_ms=duration_ms,
            summary=dict(execution.result_summary),
        )

    def _save_progress(self, execution: ImportExecution) -> None:
        if self.repository is not None:
            self.repository.update_progress(execution)

    def _log(
        self,
        execution: ImportExecution,
        level: LogLevel,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        record_index: Optional[int] = None
    ) -> None:
        logger.log(_PY_LEVELS[level], f"[{execution.id}] {message}")
        if self.repository is not None:
            self.repository.add_log(ImportExecutionLog(
                execution_id=execution.id,
                level=level,
                message=message,
                details=details,
                record_index=record_index,
                timestamp=self.clock(),
            ))
