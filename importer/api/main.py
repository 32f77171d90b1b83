"""FastAPI application entry point."""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import ExecutionStore, get_execution_store
from .routes import connections, executions, joins
from .. import __version__
from ..config import get_settings
from ..exceptions import (
    ConfigurationError,
    ConnectorError,
    InvalidStateTransition,
    JoinConfigurationError,
    SourceNotFoundError,
    UnsupportedOperationError,
)
from ..logging_setup import setup_logging
from ..store import check_connection

settings = get_settings()
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Data Import API",
    description="API for testing sources, previewing data and running imports",
    version=__version__,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(connections.router, prefix="/api/connections", tags=["connections"])
app.include_router(joins.router, prefix="/api/joins", tags=["joins"])
app.include_router(executions.router, prefix="/api/executions", tags=["executions"])


@app.exception_handler(JoinConfigurationError)
async def join_configuration_error_handler(request: Request, exc: JoinConfigurationError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "problems": exc.problems})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InvalidStateTransition)
async def state_error_handler(request: Request, exc: InvalidStateTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConnectorError)
async def connector_error_handler(request: Request, exc: ConnectorError):
    if isinstance(exc, SourceNotFoundError):
        status_code = 404
    elif isinstance(exc, UnsupportedOperationError):
        status_code = 400
    else:
        status_code = 502
    logger.warning(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/api/health")
def health_check(store: ExecutionStore = Depends(get_execution_store)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "database": "ok" if check_connection(store.engine) else "unavailable",
    }
