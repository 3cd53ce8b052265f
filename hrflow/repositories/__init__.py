"""Repository modules - Data access layer"""
from typing import Tuple

from .base import DefinitionStore, InstanceStore
from .mongo_client import get_database, get_collection, create_indexes
from .definition_repo import MongoDefinitionRepository
from .instance_repo import MongoInstanceRepository
from .inmemory import InMemoryDefinitionRepository, InMemoryInstanceRepository
from ..domain.enums import StorageBackend


def build_stores(backend: str) -> Tuple[DefinitionStore, InstanceStore]:
    """Create the definition and instance stores for a backend name"""
    if StorageBackend(backend) == StorageBackend.MEMORY:
        return InMemoryDefinitionRepository(), InMemoryInstanceRepository()
    return MongoDefinitionRepository(), MongoInstanceRepository()


__all__ = [
    "DefinitionStore",
    "InstanceStore",
    "get_database",
    "get_collection",
    "create_indexes",
    "MongoDefinitionRepository",
    "MongoInstanceRepository",
    "InMemoryDefinitionRepository",
    "InMemoryInstanceRepository",
    "build_stores",
]
