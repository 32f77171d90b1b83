"""Persistence boundary: entity loaders and the handler registry."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
import logging

from ..exceptions import UnknownEntityError

logger = logging.getLogger(__name__)

# Persist one accepted record; returns the new record's id when the target assigns one
SaveHandler = Callable[[str, Dict[str, Any]], Optional[str]]

KNOWN_ENTITIES = ("account", "user", "ticket", "timeEntry", "billingRate")


class BaseEntityLoader(ABC):
    """
    Base class for entity loaders.

    Loaders write accepted records into the host application's storage.
    Validation beyond the field mapping rules (uniqueness, foreign keys)
    is the loader's responsibility.
    """

    def __init__(self, dry_run: bool = False):
        """
        Initialize the loader.

        Args:
            dry_run: If True, simulate without making changes
        """
        self.dry_run = dry_run
        self.saved_count = 0

    def save_record(self, entity: str, data: Dict[str, Any]) -> Optional[str]:
        """
        Save one record.

        Args:
            entity: Target entity name
            data: Transformed record

        Returns:
            ID of the stored record, if any
        """
        if self.dry_run:
            logger.debug(f"[DRY RUN] Would save {entity} record")
            return None

        record_id = self._persist(entity, data)
        self.saved_count += 1
        return record_id

    @abstractmethod
    def _persist(self, entity: str, data: Dict[str, Any]) -> Optional[str]:
        """Write a record to the target store."""
        pass


class EntityLoaderRegistry:
    """
    Maps target entity names to save handlers.

    Lookup is case-insensitive. Only names in the known entity set can be
    registered unless extra names are passed at construction.
    """

    def __init__(self, extra_entities: Optional[List[str]] = None):
        self._canonical: Dict[str, str] = {
            name.lower(): name for name in list(KNOWN_ENTITIES) + list(extra_entities or [])
        }
        self._handlers: Dict[str, SaveHandler] = {}

    @classmethod
    def for_loader(cls, loader: BaseEntityLoader, extra_entities: Optional[List[str]] = None) -> "EntityLoaderRegistry":
        """Registry sending every known entity to one loader."""
        registry = cls(extra_entities)
        for name in registry.known_entities():
            registry.register(name, loader.save_record)
        return registry

    def known_entities(self) -> List[str]:
        return list(self._canonical.values())

    def canonical_name(self, entity: str) -> str:
        """Return the registered spelling of an entity name."""
        name = self._canonical.get((entity or "").lower())
        if name is None:
            raise UnknownEntityError(entity, self.known_entities())
        return name

    def register(self, entity: str, handler: SaveHandler) -> None:
        """Register the save handler for an entity."""
        name = self.canonical_name(entity)
        self._handlers[name] = handler
        logger.debug(f"Registered save handler for {name}")

    def validate(self, entity: str) -> str:
        """
        Check that an entity can be saved.

        Raises:
            UnknownEntityError: if the entity is unknown or has no handler
        """
        name = self.canonical_name(entity)
        if name not in self._handlers:
            raise UnknownEntityError(entity, sorted(self._handlers))
        return name

    def resolve(self, entity: str) -> Callable[[Dict[str, Any]], Optional[str]]:
        """
        Look up an entity's handler once, bound to its canonical name.

        Raises:
            UnknownEntityError: if the entity is unknown or has no handler
        """
        name = self.validate(entity)
        handler = self._handlers[name]
        return lambda data: handler(name, data)

    def save(self, entity: str, data: Dict[str, Any]) -> Optional[str]:
        """Dispatch a record to its entity's handler."""
        return self.resolve(entity)(data)
