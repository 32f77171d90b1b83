"""Staging loader that keeps accepted records in the execution store."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from .base import BaseEntityLoader
from ..store.models import ImportedRecordRow
from ..store.repository import json_safe

logger = logging.getLogger(__name__)


class StagingTableLoader(BaseEntityLoader):
    """
    Writes each accepted record as a JSON row into imported_records.

    Used by the CLI and HTTP API when no application-specific handlers
    are registered.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        execution_id: Optional[str] = None,
        dry_run: bool = False
    ):
        super().__init__(dry_run=dry_run)
        self.session_factory = session_factory
        self.execution_id = execution_id

    def _persist(self, entity: str, data: Dict[str, Any]) -> Optional[str]:
        row = ImportedRecordRow(
            entity=entity,
            execution_id=self.execution_id,
            data_json=json_safe(data),
        )
        with self.session_factory() as session:
            session.add(row)
            session.commit()
            return row.id
