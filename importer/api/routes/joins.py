"""Join preview endpoint."""

from fastapi import APIRouter, Depends

from ..dependencies import get_connection_manager
from ..models import JoinPreviewRequest, JoinPreviewResponse
from ...config import get_settings
from ...connectors.manager import ConnectionManager
from ...models.connection import connection_from_dict
from ...models.schema import JoinedTableConfig
from ...services.join_planner import JoinPlanner

router = APIRouter()


@router.post("/preview", response_model=JoinPreviewResponse)
def preview_join(data: JoinPreviewRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """Preview a joined table; the response says when rows are only an approximation."""
    config = connection_from_dict(data.connection)
    join_config = JoinedTableConfig.from_dict(data.joined_table)

    preview = JoinPlanner(manager).preview(
        config,
        join_config,
        limit=data.limit or get_settings().join_preview_limit,
        search=data.search,
    )
    return JoinPreviewResponse(**preview.to_dict())
