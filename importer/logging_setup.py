"""Logging configuration shared by the CLI and the HTTP API."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None, verbose: bool = False) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Log level name (defaults to INFO)
        verbose: Force DEBUG output
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # Driver and HTTP client chatter is only useful when debugging
    if log_level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
