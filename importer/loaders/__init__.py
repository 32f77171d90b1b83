"""Loaders that persist accepted records."""

from .base import KNOWN_ENTITIES, BaseEntityLoader, EntityLoaderRegistry, SaveHandler
from .staging import StagingTableLoader

__all__ = [
    "KNOWN_ENTITIES",
    "BaseEntityLoader",
    "EntityLoaderRegistry",
    "SaveHandler",
    "StagingTableLoader",
]
