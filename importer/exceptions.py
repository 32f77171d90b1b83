"""Exception hierarchy for the import pipeline."""

from typing import List, Optional


class ImporterError(Exception):
    """Base class for all import pipeline errors."""


class ConfigurationError(ImporterError):
    """Raised when a connection, mapping or execution configuration is invalid."""


class ConnectorError(ImporterError):
    """Raised when a source cannot be reached or read."""


class SourceNotFoundError(ConnectorError):
    """Raised when a file-backed source does not exist."""


class SchemaIntrospectionError(ConnectorError):
    """Raised when schema discovery fails for any table of a source."""


class QueryError(ConnectorError):
    """Raised when a query against a source fails."""


class UnsupportedOperationError(ConnectorError):
    """Raised when an operation is not available for a source type."""


class JoinConfigurationError(ImporterError):
    """Raised when a joined table configuration does not match the source schema."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid join configuration: " + "; ".join(self.problems))


class UnknownEntityError(ConfigurationError):
    """Raised when no save handler is registered for a target entity."""

    def __init__(self, entity: str, known: Optional[List[str]] = None):
        self.entity = entity
        message = f"Unknown target entity: {entity}"
        if known:
            message += f". Known entities: {', '.join(known)}"
        super().__init__(message)


class InvalidStateTransition(ImporterError):
    """Raised when an execution is moved out of a terminal status."""
