"""Shared objects for API routes, resolved through FastAPI dependencies."""

import logging
import threading
from functools import lru_cache
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from ..config import get_settings
from ..connectors.manager import ConnectionManager
from ..engine import CancellationToken
from ..models.execution import ImportExecution, ImportStatus, utcnow
from ..store import ExecutionRepository, create_session_factory, create_store_engine, init_db

logger = logging.getLogger(__name__)


class ExecutionStore:
    """Execution store plus the cancellation tokens of runs in progress."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.repository = ExecutionRepository(session_factory)
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    @property
    def engine(self):
        return self.session_factory.kw["bind"]

    def register_run(self, execution_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            self._tokens[execution_id] = token
        return token

    def finish_run(self, execution_id: str) -> None:
        with self._lock:
            self._tokens.pop(execution_id, None)

    def request_cancel(self, execution_id: str) -> Tuple[Optional[ImportExecution], str]:
        """
        Cancel a pending or running execution.

        The status is read while holding the lock that finish_run takes.
        Workers finalize before dropping their token, so a missing token
        means the read already saw the final status.

        Returns:
            (execution, outcome) where outcome is "cancelling" when a worker
            owns the run, "cancelled" when it was finalized here, or
            "terminal" when it had already finished. execution is None when
            the id is unknown.
        """
        with self._lock:
            execution = self.repository.get(execution_id)
            if execution is None or execution.status.is_terminal:
                return execution, "terminal"

            token = self._tokens.get(execution_id)
            if token is not None:
                token.cancel()
                return execution, "cancelling"

            # No worker owns this execution any more
            execution.transition(ImportStatus.CANCELLED)
            execution.completed_at = utcnow()
            self.repository.finalize(execution)
            return execution, "cancelled"


@lru_cache()
def get_execution_store() -> ExecutionStore:
    settings = get_settings()
    engine = create_store_engine(settings.database_url)
    init_db(engine)
    logger.info("Execution store initialized")
    return ExecutionStore(create_session_factory(engine))


@lru_cache()
def get_connection_manager() -> ConnectionManager:
    return ConnectionManager()
