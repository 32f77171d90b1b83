"""Import execution endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from ..dependencies import ExecutionStore, get_connection_manager, get_execution_store
from ..models import ExecutionCreate, ExecutionLogListResponse, ExecutionLogResponse, ExecutionResponse
from ...connectors.manager import ConnectionManager
from ...engine import CancellationToken, ImportExecutionEngine, ImportRequest
from ...loaders import EntityLoaderRegistry, StagingTableLoader
from ...models.connection import connection_from_dict
from ...models.execution import ImportExecution, LogLevel
from ...models.mapping import EntityMapping
from ...models.schema import JoinedTableConfig

logger = logging.getLogger(__name__)

router = APIRouter()


def _build_engine(store: ExecutionStore, manager: ConnectionManager, execution: ImportExecution) -> ImportExecutionEngine:
    loader = StagingTableLoader(store.session_factory, execution_id=execution.id, dry_run=execution.dry_run)
    return ImportExecutionEngine(
        manager,
        EntityLoaderRegistry.for_loader(loader),
        repository=store.repository,
    )


@router.post("", response_model=ExecutionResponse, status_code=202)
def create_execution(
    data: ExecutionCreate,
    background_tasks: BackgroundTasks,
    store: ExecutionStore = Depends(get_execution_store),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Validate an import request and start it in the background."""
    request = ImportRequest(
        connection=connection_from_dict(data.connection),
        entity_mapping=EntityMapping.from_dict(data.mapping),
        table_name=data.table_name,
        joined_table=JoinedTableConfig.from_dict(data.joined_table) if data.joined_table else None,
        dry_run=data.dry_run,
    )
    execution = ImportExecution(
        configuration_id=data.configuration_id,
        target_entity=request.target_entity,
        dry_run=data.dry_run,
        executed_by=data.executed_by,
    )

    # Configuration problems surface here as 400s, before anything is stored
    execution.target_entity = _build_engine(store, manager, execution).validate_request(request)
    # Register the token first so a cancel never finds a stored run without one
    token = store.register_run(execution.id)
    try:
        store.repository.create(execution)
    except Exception:
        store.finish_run(execution.id)
        raise

    background_tasks.add_task(run_execution_task, store, manager, execution, request, token)
    return ExecutionResponse.from_execution(execution)


def run_execution_task(
    store: ExecutionStore,
    manager: ConnectionManager,
    execution: ImportExecution,
    request: ImportRequest,
    token: CancellationToken,
):
    """Background task running one import."""
    try:
        _build_engine(store, manager, execution).execute_import(execution, request, cancel_token=token)
    except Exception:
        logger.exception(f"Execution {execution.id} crashed")
    finally:
        store.finish_run(execution.id)


@router.get("", response_model=List[ExecutionResponse])
def list_executions(limit: int = 50, store: ExecutionStore = Depends(get_execution_store)):
    """List recent executions."""
    return [ExecutionResponse.from_execution(e) for e in store.repository.list_executions(limit)]


@router.get("/{execution_id}", response_model=ExecutionResponse)
def get_execution(execution_id: str, store: ExecutionStore = Depends(get_execution_store)):
    """Get the current state of an execution."""
    execution = store.repository.get(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return ExecutionResponse.from_execution(execution)


@router.post("/{execution_id}/cancel")
def cancel_execution(execution_id: str, store: ExecutionStore = Depends(get_execution_store)):
    """Cancel a pending or running execution."""
    execution, outcome = store.request_cancel(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")

    if outcome == "terminal":
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel execution in status: {execution.status.value}"
        )
    return {"status": outcome, "execution_id": execution_id}


@router.get("/{execution_id}/logs", response_model=ExecutionLogListResponse)
def get_execution_logs(
    execution_id: str,
    level: Optional[LogLevel] = None,
    store: ExecutionStore = Depends(get_execution_store),
):
    """Get the audit log of an execution."""
    if not store.repository.get(execution_id):
        raise HTTPException(status_code=404, detail="Execution not found")

    logs = store.repository.list_logs(execution_id, level)
    return ExecutionLogListResponse(
        execution_id=execution_id,
        logs=[ExecutionLogResponse.from_log(log) for log in logs],
        total=len(logs),
    )
