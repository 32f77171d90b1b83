"""Connection test, schema and table preview endpoints."""

from fastapi import APIRouter, Depends

from ..dependencies import get_connection_manager
from ..models import ConnectionRequest, ConnectionTestResponse, TablePreviewRequest, TablePreviewResponse
from ...connectors.manager import ConnectionManager
from ...models.connection import connection_from_dict

router = APIRouter()


@router.post("/test", response_model=ConnectionTestResponse)
def test_connection(data: ConnectionRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """Test a connection; failures are reported in the body, not as HTTP errors."""
    config = connection_from_dict(data.connection)
    return ConnectionTestResponse(**manager.test_connection(config).to_dict())


@router.post("/schema")
def get_schema(data: ConnectionRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """Discover the schema of a source."""
    config = connection_from_dict(data.connection)
    return manager.get_source_schema(config).to_dict()


@router.post("/preview", response_model=TablePreviewResponse)
def preview_table(data: TablePreviewRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """Return the first rows of a table."""
    config = connection_from_dict(data.connection)
    rows = manager.get_table_preview(config, data.table_name, data.limit)

    columns = []
    for row in rows:
        columns.extend(k for k in row if k not in columns)
    return TablePreviewResponse(table_name=data.table_name, columns=columns, rows=rows)
